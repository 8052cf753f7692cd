"""
Importer feature package.

Provides conditional blueprint, Celery and CLI registration for the CSV
import engine while remaining lightweight when the importer is disabled.
"""

from __future__ import annotations

from flask import Flask

from flask_app.utils.importer import is_importer_enabled

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_importer_group, importer_cli
from .pipeline import ImportRunService, ImportService, RunFilters
from .registry import get_entity_registry
from .views import importer_blueprint

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "get_celery_app",
    "ImportRunService",
    "ImportService",
    "RunFilters",
]


def _ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "worker_enabled": False,
            "entity_types": (),
            "celery_app": None,
        },
    )


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount the importer blueprint, worker and CLI.

    Importer state lives in ``app.extensions['importer']`` for reuse by the
    CLI and the health endpoints.
    """
    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "worker_enabled": bool(app.config.get("IMPORTER_WORKER_ENABLED", False)),
        }
    )

    if not enabled:
        state["entity_types"] = ()
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    state["entity_types"] = get_entity_registry().names()
    ensure_celery_app(app, state)

    if importer_blueprint.name not in app.blueprints:
        app.register_blueprint(importer_blueprint)
    _set_cli(app, enabled=True)

    app.logger.info("Importer enabled for entity types: %s", ", ".join(state["entity_types"]) or "none")
