"""
Unit tests for logging setup.
"""

import logging

import json_log_formatter
import pytest

from backend.rfe_server.config import ObservabilityConfig, ServerConfig, StorageConfig
from backend.rfe_server.main import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def _config(self, tmp_path, log_format, log_level="INFO"):
        return ServerConfig(
            storage=StorageConfig(data_dir=str(tmp_path)),
            observability=ObservabilityConfig(log_level=log_level, log_format=log_format),
        )

    def test_json_format(self, tmp_path, restore_root_logger):
        setup_logging(self._config(tmp_path, "json"))

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter, json_log_formatter.JSONFormatter)
        assert restore_root_logger.level == logging.INFO

    def test_text_format(self, tmp_path, restore_root_logger):
        setup_logging(self._config(tmp_path, "text", "debug"))

        (handler,) = restore_root_logger.handlers
        assert not isinstance(handler.formatter, json_log_formatter.JSONFormatter)
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("botocore").level == logging.WARNING
