"""
Utility helpers for importer configuration lookups.
"""

from __future__ import annotations

from flask import current_app

DEFAULT_CURRENCY = "USD"
DEFAULT_HARD_DELETE_DAYS = 2


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_importer_enabled(app=None) -> bool:
    """Return True when the importer feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("IMPORTER_ENABLED", False))


def get_default_currency(app=None) -> str:
    """Currency applied to money columns when neither the row nor the run names one."""
    config = _get_config(app)
    return (config.get("IMPORTER_DEFAULT_CURRENCY") or DEFAULT_CURRENCY).upper()


def get_hard_delete_days(app=None) -> float:
    """Runs younger than this many days are purged outright on revert."""
    config = _get_config(app)
    return float(config.get("IMPORTER_REVERT_HARD_DELETE_DAYS", DEFAULT_HARD_DELETE_DAYS))
