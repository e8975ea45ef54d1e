"""
Configuration management for the RFE backend server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for the object store
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Policy flags default to the historical behaviour
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class ObjectStoreBackend(Enum):
    """Supported object storage backends."""

    MEMORY = "memory"
    S3 = "s3"


@dataclass(frozen=True)
class StorageConfig:
    """Tenant store configuration.

    Attributes:
        data_dir: Directory for per-tenant SQLite databases
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: How long a writer waits for the tenant lock
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    data_dir: str = "/var/lib/rfe"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -16000  # 16MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("DATA_DIR", "/var/lib/rfe"),
            wal_mode=_env_flag("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-16000")),
        )


@dataclass(frozen=True)
class ObjectStoreConfig:
    """Object storage configuration for photos and PDFs.

    Attributes:
        backend: Which object store to use
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (R2, MinIO)
        access_key_id: Access key (optional, uses AWS credential chain)
        secret_access_key: Secret key (optional)
    """

    backend: ObjectStoreBackend = ObjectStoreBackend.MEMORY
    bucket: str = "rfe-files"
    region: str = "auto"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> ObjectStoreConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If OBJECT_STORE_BACKEND is not a known backend.
        """
        backend_str = os.getenv("OBJECT_STORE_BACKEND", "memory").lower()
        try:
            backend = ObjectStoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid OBJECT_STORE_BACKEND '{backend_str}'. Must be one of: memory, s3"
            )

        return cls(
            backend=backend,
            bucket=os.getenv("S3_BUCKET", "rfe-files"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "auto")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            access_key_id=os.getenv("S3_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class JobsConfig:
    """Job lifecycle policy.

    Attributes:
        require_completion_before_paid: Reject mark_paid on estimates that
            were never completed. Off by default, so an estimate can be
            invoiced from whatever actuals it currently holds.
    """

    require_completion_before_paid: bool = False

    @classmethod
    def from_env(cls) -> JobsConfig:
        """Load configuration from environment variables."""
        return cls(
            require_completion_before_paid=_env_flag(
                "JOBS_REQUIRE_COMPLETION_BEFORE_PAID", "false"
            ),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    HTTP bind settings live in api.settings.ApiSettings.

    Attributes:
        storage: Tenant store configuration
        object_store: Object storage configuration
        jobs: Job lifecycle policy
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    object_store: ObjectStoreConfig = field(default_factory=ObjectStoreConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            object_store=ObjectStoreConfig.from_env(),
            jobs=JobsConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.object_store.backend == ObjectStoreBackend.S3 and not self.object_store.bucket:
            raise ValueError("S3_BUCKET is required when OBJECT_STORE_BACKEND=s3")

        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must not be negative")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "wal_mode": self.storage.wal_mode,
                "object_store": self.object_store.backend.value,
                "s3_bucket": self.object_store.bucket
                if self.object_store.backend == ObjectStoreBackend.S3
                else None,
                "require_completion_before_paid": self.jobs.require_completion_before_paid,
                "log_level": self.observability.log_level,
            },
        )
