"""
Celery wiring for deferred (idle-mode) import runs.

The worker is bound to the Flask app so tasks share its configuration and
database session. Without an explicit broker the SQLite transport is used,
which keeps local development free of Redis.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from celery import Celery
from flask import Flask
from kombu import Queue

DEFAULT_QUEUE_NAME = "imports"
DEFAULT_SQLITE_FILENAME = "celery.sqlite"
IMPORTER_TASK_ROUTES = {
    "importer.run_idle_import": {"queue": DEFAULT_QUEUE_NAME},
    "importer.healthcheck": {"queue": DEFAULT_QUEUE_NAME},
}


def _quiet_worker_loggers(app: Flask) -> None:
    # row-level SQL is too noisy inside a long import unless echo is requested
    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.worker.strategy").setLevel(logging.WARNING)


def _sqlite_transport_path(app: Flask) -> Path:
    """
    Path of the SQLite file backing the default broker and result backend.

    ``CELERY_SQLITE_PATH`` may be absolute or relative to the instance folder.
    """
    configured = app.config.get("CELERY_SQLITE_PATH")
    sqlite_path = Path(configured) if configured else Path(DEFAULT_SQLITE_FILENAME)
    if not sqlite_path.is_absolute():
        sqlite_path = Path(app.instance_path) / sqlite_path

    sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite_path


def _resolve_urls(app: Flask) -> tuple[str, str]:
    broker_url = app.config.get("CELERY_BROKER_URL")
    result_backend = app.config.get("CELERY_RESULT_BACKEND")
    if broker_url and result_backend:
        return broker_url, result_backend

    # Celery expects forward slashes even on Windows.
    normalized = _sqlite_transport_path(app).as_posix()
    return (
        broker_url or f"sqla+sqlite:///{normalized}",
        result_backend or f"db+sqlite:///{normalized}",
    )


def _extra_conf(app: Flask) -> Mapping[str, Any] | None:
    extra_conf: Mapping[str, Any] | str | None = app.config.get("CELERY_CONFIG")
    if isinstance(extra_conf, str):
        try:
            return json.loads(extra_conf)
        except json.JSONDecodeError:
            app.logger.warning("CELERY_CONFIG is not valid JSON; ignoring value.", exc_info=True)
            return None
    return extra_conf


def create_celery_app(app: Flask) -> Celery:
    """
    Create a Celery instance bound to ``app``.

    ``CELERY_BROKER_URL``/``CELERY_RESULT_BACKEND`` switch the transport to
    Redis or Postgres; ``CELERY_CONFIG`` (mapping or JSON string) is applied last.
    """
    broker_url, result_backend = _resolve_urls(app)
    celery_app = Celery(
        app.import_name,
        broker=broker_url,
        backend=result_backend,
        include=("flask_app.importer.tasks",),
    )

    time_limit = int(app.config.get("IMPORTER_TASK_TIME_LIMIT", 60 * 60))
    celery_app.conf.update(
        task_default_queue=DEFAULT_QUEUE_NAME,
        task_queues=[Queue(DEFAULT_QUEUE_NAME)],
        task_default_exchange=DEFAULT_QUEUE_NAME,
        task_default_routing_key=DEFAULT_QUEUE_NAME,
        task_routes=IMPORTER_TASK_ROUTES,
        # a run checkpoints after every row, so a redelivered task resumes cleanly
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        result_extended=True,
        broker_connection_retry_on_startup=True,
        task_time_limit=time_limit,
        task_soft_time_limit=max(time_limit - 60, 1),
        task_always_eager=bool(app.config.get("CELERY_TASK_ALWAYS_EAGER", False)),
        worker_hijack_root_logger=False,
    )

    extra_conf = _extra_conf(app)
    if extra_conf:
        celery_app.conf.update(extra_conf)

    app.logger.info(
        "Importer Celery configuration resolved",
        extra={
            "importer_celery_broker_url": broker_url,
            "importer_celery_result_backend": result_backend,
            "importer_celery_time_limit": time_limit,
            "importer_worker_enabled": app.config.get("IMPORTER_WORKER_ENABLED"),
        },
    )
    _quiet_worker_loggers(app)

    class FlaskContextTask(celery_app.Task):  # type: ignore[misc]
        """Run every importer task inside the Flask application context."""

        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery_app.Task = FlaskContextTask  # type: ignore[assignment]
    celery_app.set_default()
    celery_app.loader.import_default_modules()
    return celery_app


def ensure_celery_app(app: Flask, state: dict[str, Any]) -> Celery:
    """Return (and cache) the Celery instance kept in the importer extension state."""
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None:
        celery_app = create_celery_app(app)
        state["celery_app"] = celery_app
    return celery_app


def get_celery_app(app: Flask) -> Celery | None:
    state: dict[str, Any] | None = app.extensions.get("importer")  # type: ignore[arg-type]
    if not state:
        return None
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None and state.get("enabled"):
        celery_app = ensure_celery_app(app, state)
    return celery_app
