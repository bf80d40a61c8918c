"""Centralized application configuration using Pydantic Settings (v2).

This module exposes a single, cached `settings` instance that reads from:
- Real environment variables (highest precedence)
- `.env` files at the repository root: .env, .env.local, .env.dev/.env.test/.env.prod
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Typed application configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `FISCALSNAP_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    data_dir : Optional[Path]
        Directory where snapshots are persisted as JSON files. When unset the
        store is memory-only. Maps from `FISCALSNAP_DATA_DIR`.
    io_timeout_seconds : float
        Default bound for ledger / fiscal-book calls and lock acquisition.
    scheduler_enabled : bool
        Start the retention scheduler loop together with the HTTP app.
    scheduler_interval_seconds : float
        Seconds between two scheduler ticks.
    default_retention : int
        Retention count used when a schedule is created without one.
    """

    environment: EnvName = Field(default="dev", alias="FISCALSNAP_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")
    data_dir: Path | None = Field(default=None, alias="FISCALSNAP_DATA_DIR")
    io_timeout_seconds: float = Field(default=10.0, gt=0, alias="FISCALSNAP_IO_TIMEOUT_SECONDS")
    scheduler_enabled: bool = Field(default=False, alias="FISCALSNAP_SCHEDULER_ENABLED")
    scheduler_interval_seconds: float = Field(
        default=3600.0, gt=0, alias="FISCALSNAP_SCHEDULER_INTERVAL_SECONDS"
    )
    default_retention: int = Field(default=12, ge=1, le=100, alias="FISCALSNAP_DEFAULT_RETENTION")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_dev(self) -> bool:
        """Return True if running in the development environment."""
        return self.environment == "dev"

    @property
    def is_test(self) -> bool:
        """Return True if running in the test environment."""
        return self.environment == "test"

    @property
    def is_prod(self) -> bool:
        """Return True if running in the production environment."""
        return self.environment == "prod"

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    We keep this behind an LRU cache so tests can force a rebuild via
    `load_settings.cache_clear()` after mutating `os.environ`.
    """
    os.environ.setdefault("FISCALSNAP_ENV", "dev")
    return Settings()


# Export a ready-to-use singleton (import-time read of env / .env files).
settings: Settings = load_settings()


def get_logger(name: str = "fiscalsnap") -> logging.Logger:
    """Return a process-global logger configured to the current `LOG_LEVEL`."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger
