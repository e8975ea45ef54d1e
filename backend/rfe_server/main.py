"""
RFE Backend Server - Main entry point.

This module starts the HTTP API (FastAPI under uvicorn) with:
- Tenant store (one SQLite database per tenant)
- Object store (S3-compatible or in-memory)

Usage:
    python -m backend.rfe_server.main

Configuration is entirely via environment variables.
See config.py and api/settings.py for all available settings.

Invariants:
    - The data directory exists before the first request is accepted
    - Uvicorn owns signal handling and graceful shutdown

How to change safely:
    - Add new components to create_app, not here
    - Keep setup_logging idempotent (it replaces root handlers)
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import json_log_formatter
import uvicorn

from .api import ApiSettings, create_app
from .config import ServerConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Server:
    """RFE server orchestrator.

    Attributes:
        config: Server configuration
        settings: HTTP bind and CORS settings

    Example:
        >>> server = Server()
        >>> await server.serve()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        settings: ApiSettings | None = None,
    ) -> None:
        self.config = config or ServerConfig.from_env()
        self.settings = settings or ApiSettings()

    async def serve(self) -> None:
        """Start the HTTP API and block until shutdown."""
        logger.info("Starting RFE server")
        self.config.log_config()

        Path(self.config.storage.data_dir).mkdir(parents=True, exist_ok=True)

        app = create_app(self.config, self.settings)
        uvicorn_config = uvicorn.Config(
            app,
            host=self.settings.host,
            port=self.settings.port,
            log_config=None,
        )
        await uvicorn.Server(uvicorn_config).serve()
        logger.info("RFE server stopped")


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
