"""Core package initializer for fiscalsnap.

Re-exports nothing on purpose; downstream code imports explicitly:
    from fiscalsnap.core.settings import settings, load_settings, Settings, get_logger
"""

from __future__ import annotations

__all__ = ["__doc__"]
