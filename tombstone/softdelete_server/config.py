"""
Configuration management for the soft-delete engine.

All configuration is done via environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Configuration is read once at startup; eligibility and consistency
      policy cannot change while the engine runs

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable; they are part of the deployment
      contract
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .schema.capability import DEFAULT_ELIGIBLE_PREFIX
from .softdelete.versions import VersionConsistency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    """SQLite record store configuration.

    Attributes:
        db_path: Path of the SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    db_path: str = "softdelete.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -64000  # 64MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("SOFTDELETE_DB_PATH", "softdelete.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-64000")),
        )


@dataclass(frozen=True)
class InterceptionConfig:
    """Soft-delete interception configuration.

    Attributes:
        eligible_prefix: uid prefix of resource types that participate
        version_consistency: How sibling versions are written together
    """

    eligible_prefix: str = DEFAULT_ELIGIBLE_PREFIX
    version_consistency: VersionConsistency = VersionConsistency.BEST_EFFORT

    @classmethod
    def from_env(cls) -> InterceptionConfig:
        """Load configuration from environment variables."""
        consistency_str = os.getenv("SOFTDELETE_VERSION_CONSISTENCY", "best-effort").lower()
        try:
            consistency = VersionConsistency(consistency_str)
        except ValueError:
            raise ValueError(
                f"Invalid SOFTDELETE_VERSION_CONSISTENCY '{consistency_str}'. "
                "Must be one of: best-effort, atomic"
            )
        return cls(
            eligible_prefix=os.getenv("SOFTDELETE_ELIGIBLE_PREFIX", DEFAULT_ELIGIBLE_PREFIX),
            version_consistency=consistency,
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
class EngineConfig:
    """Complete engine configuration.

    Attributes:
        storage: Record store configuration
        interception: Soft-delete interception configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    interception: InterceptionConfig = field(default_factory=InterceptionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            interception=InterceptionConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.db_path:
            raise ValueError("SOFTDELETE_DB_PATH cannot be empty")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("SQLITE_BUSY_TIMEOUT_MS must be non-negative")
        if not self.interception.eligible_prefix:
            raise ValueError("SOFTDELETE_ELIGIBLE_PREFIX cannot be empty")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        parent = os.path.dirname(os.path.abspath(self.storage.db_path))
        if not os.path.exists(parent):
            logger.warning(
                f"Database directory does not exist: {parent}. "
                "It will be created on startup."
            )

    def log_config(self) -> None:
        logger.info(
            "Engine configuration loaded",
            extra={
                "db_path": self.storage.db_path,
                "wal_mode": self.storage.wal_mode,
                "eligible_prefix": self.interception.eligible_prefix,
                "version_consistency": self.interception.version_consistency.value,
                "log_level": self.observability.log_level,
            },
        )
