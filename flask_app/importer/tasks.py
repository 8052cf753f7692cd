"""
Importer Celery tasks.

``importer.run_idle_import`` executes runs that were deferred with
``idleMode``; ``importer.healthcheck`` backs the worker health checks.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from celery import shared_task
from flask import current_app

from flask_app.models import User
from flask_app.models.base import db

from .celery_app import DEFAULT_QUEUE_NAME
from .exceptions import BadJobData, NotFound, PermissionDenied
from .pipeline import ImportService

REQUIRED_PAYLOAD_KEYS = ("userId", "importAttributeList", "params", "entityType")


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
        "app_version": getattr(self.app, "user_options", {}).get("version"),
    }


def _validate_payload(payload: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not payload:
        raise BadJobData("Import job payload is empty.")
    for key in REQUIRED_PAYLOAD_KEYS:
        if payload.get(key) in (None, ""):
            raise BadJobData(f"Import job payload is missing '{key}'.")
    return payload


@shared_task(name="importer.run_idle_import", bind=True)
def run_idle_import(self, *, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Execute an import run that was persisted as Pending by an idle-mode request.
    """
    payload = _validate_payload(payload)

    user = db.session.get(User, payload["userId"])
    if user is None:
        raise NotFound(f"User {payload['userId']} not found.")
    if not user.is_active:
        raise PermissionDenied(f"User {payload['userId']} is not active.")

    params = dict(payload["params"])
    params["idleMode"] = False

    current_app.logger.info(
        "Idle import picked up by worker",
        extra={
            "importer_run_id": payload.get("importId"),
            "importer_entity_type": payload["entityType"],
            "importer_task_id": self.request.id,
        },
    )

    service = ImportService(principal=user)
    result = service.run(
        payload["entityType"],
        payload["importAttributeList"],
        payload.get("attachmentId"),
        params,
        import_id=payload.get("importId"),
        user=user,
    )
    return result.as_dict()


TASKS_BY_JOB = {
    "importer.run_idle_import": run_idle_import,
}


class CeleryJobSubmitter:
    """Enqueue importer jobs on the ``imports`` queue."""

    def __init__(self, queue: str = DEFAULT_QUEUE_NAME) -> None:
        self.queue = queue

    def enqueue(self, job_name: str, payload: Mapping[str, Any]):
        task = TASKS_BY_JOB.get(job_name)
        if task is None:
            raise BadJobData(f"Unknown importer job '{job_name}'.")
        async_result = task.apply_async(kwargs={"payload": dict(payload)}, queue=self.queue)
        current_app.logger.info(
            "Importer job enqueued",
            extra={
                "importer_job": job_name,
                "importer_task_id": async_result.id,
                "importer_run_id": payload.get("importId"),
            },
        )
        return async_result
