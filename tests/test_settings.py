"""Typed smoke tests for the settings loader.

These tests verify four guarantees:
1) Importing the module-level `settings` yields a `Settings` instance.
2) Environment variables override defaults after clearing the loader cache.
3) Out-of-range values are rejected by the pydantic-settings model.
4) `get_logger()` respects the configured LOG_LEVEL when constructing loggers.

`monkeypatch` is annotated as `Any` to keep the tests typed without stubs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pydantic
import pytest

from fiscalsnap.core.settings import (
    Settings,
    get_logger,
    load_settings,
    settings,
)


def test_settings_instance_type() -> None:
    """`settings` should be an instance of the typed `Settings` model."""
    assert isinstance(settings, Settings)


def test_defaults(monkeypatch: Any) -> None:
    """Without overrides the store is memory-only and the scheduler is off."""
    for var in (
        "FISCALSNAP_DATA_DIR",
        "FISCALSNAP_IO_TIMEOUT_SECONDS",
        "FISCALSNAP_SCHEDULER_ENABLED",
        "FISCALSNAP_DEFAULT_RETENTION",
    ):
        monkeypatch.delenv(var, raising=False)
    load_settings.cache_clear()
    s = load_settings()

    assert s.data_dir is None
    assert s.io_timeout_seconds == 10.0
    assert s.scheduler_enabled is False
    assert s.scheduler_interval_seconds == 3600.0
    assert s.default_retention == 12
    load_settings.cache_clear()


def test_env_overrides_with_cache_clear(monkeypatch: Any, tmp_path: Path) -> None:
    """Changing env vars should take effect after `load_settings.cache_clear()`."""
    monkeypatch.setenv("FISCALSNAP_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("FISCALSNAP_DATA_DIR", str(tmp_path / "snaps"))
    monkeypatch.setenv("FISCALSNAP_SCHEDULER_ENABLED", "true")
    monkeypatch.setenv("FISCALSNAP_DEFAULT_RETENTION", "3")

    load_settings.cache_clear()
    s = load_settings()

    assert s.environment == "test"
    assert s.is_test and not s.is_prod
    assert s.log_level == "DEBUG"
    assert s.data_dir == tmp_path / "snaps"
    assert s.scheduler_enabled is True
    assert s.default_retention == 3
    load_settings.cache_clear()


def test_out_of_range_retention_rejected(monkeypatch: Any) -> None:
    """Retention outside 1..100 is a configuration error."""
    monkeypatch.setenv("FISCALSNAP_DEFAULT_RETENTION", "0")
    load_settings.cache_clear()
    with pytest.raises(pydantic.ValidationError):
        load_settings()
    load_settings.cache_clear()


def test_get_logger_respects_level(monkeypatch: Any) -> None:
    """`get_logger()` should apply the numeric level derived from `LOG_LEVEL`."""
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    load_settings.cache_clear()
    _ = load_settings()

    logger = get_logger("fiscalsnap.tests.settings")

    assert logger.level == logging.ERROR
    assert logger.handlers, "Expected at least one StreamHandler to be attached."
    load_settings.cache_clear()
