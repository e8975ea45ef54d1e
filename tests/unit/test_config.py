"""
Unit tests for environment configuration.

Tests cover:
- Defaults
- Environment overrides
- Validation failures
"""

import pytest

from backend.rfe_server.api import ApiSettings
from backend.rfe_server.config import (
    JobsConfig,
    ObjectStoreBackend,
    ObjectStoreConfig,
    ServerConfig,
    StorageConfig,
)

ENV_VARS = [
    "DATA_DIR",
    "SQLITE_WAL_MODE",
    "SQLITE_BUSY_TIMEOUT_MS",
    "SQLITE_CACHE_SIZE",
    "OBJECT_STORE_BACKEND",
    "S3_BUCKET",
    "S3_REGION",
    "AWS_REGION",
    "S3_ENDPOINT",
    "S3_ACCESS_KEY_ID",
    "S3_SECRET_ACCESS_KEY",
    "JOBS_REQUIRE_COMPLETION_BEFORE_PAID",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test from an empty configuration environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestServerConfig:
    """Tests for ServerConfig.from_env."""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))

        config = ServerConfig.from_env()
        assert config.storage.data_dir == str(tmp_path)
        assert config.storage.wal_mode is True
        assert config.storage.busy_timeout_ms == 5000
        assert config.object_store.backend == ObjectStoreBackend.MEMORY
        assert config.jobs.require_completion_before_paid is False
        assert config.observability.log_format == "json"

    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("SQLITE_BUSY_TIMEOUT_MS", "250")
        monkeypatch.setenv("OBJECT_STORE_BACKEND", "S3")
        monkeypatch.setenv("S3_BUCKET", "photos")
        monkeypatch.setenv("S3_ENDPOINT", "http://minio:9000")
        monkeypatch.setenv("JOBS_REQUIRE_COMPLETION_BEFORE_PAID", "true")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()
        assert config.storage.wal_mode is False
        assert config.storage.busy_timeout_ms == 250
        assert config.object_store.backend == ObjectStoreBackend.S3
        assert config.object_store.bucket == "photos"
        assert config.object_store.endpoint_url == "http://minio:9000"
        assert config.jobs.require_completion_before_paid is True
        assert config.observability.log_format == "text"

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("OBJECT_STORE_BACKEND", "gcs")

        with pytest.raises(ValueError, match="OBJECT_STORE_BACKEND"):
            ObjectStoreConfig.from_env()

    def test_invalid_log_format(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            ServerConfig.from_env()

    def test_s3_requires_bucket(self, tmp_path):
        config = ServerConfig(
            storage=StorageConfig(data_dir=str(tmp_path)),
            object_store=ObjectStoreConfig(backend=ObjectStoreBackend.S3, bucket=""),
        )

        with pytest.raises(ValueError, match="S3_BUCKET"):
            config.validate()

    def test_negative_busy_timeout(self, tmp_path):
        config = ServerConfig(storage=StorageConfig(data_dir=str(tmp_path), busy_timeout_ms=-1))

        with pytest.raises(ValueError, match="SQLITE_BUSY_TIMEOUT_MS"):
            config.validate()

    def test_jobs_flag_parsing(self, monkeypatch):
        monkeypatch.setenv("JOBS_REQUIRE_COMPLETION_BEFORE_PAID", "yes")

        assert JobsConfig.from_env().require_completion_before_paid is False


class TestApiSettings:
    """Tests for HTTP settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("RFE_API_PORT", raising=False)

        settings = ApiSettings()
        assert settings.port == 8080
        assert settings.bind_address.endswith(":8080")

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("RFE_API_PORT", "9090")
        monkeypatch.setenv("RFE_API_CORS_ORIGINS", '["https://app.example.com"]')

        settings = ApiSettings()
        assert settings.port == 9090
        assert settings.cors_origins == ["https://app.example.com"]
