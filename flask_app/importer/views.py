"""
Importer blueprint: health checks and JSON endpoints for starting, listing,
resuming and unwinding import runs.
"""

from __future__ import annotations

import json
import time
from http import HTTPStatus
from typing import Any

from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from flask_app.importer.pipeline import ImportRunService, ImportService, RunFilters
from flask_app.models import AccessLevel
from flask_app.utils.permissions import AclPermissionChecker, get_access_level, login_required_json

from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .exceptions import ImporterError, InvalidRequest, PermissionDenied
from .registry import get_entity_registry
from .stores import SqlRecordStore
from .utils import allowed_file

importer_blueprint = Blueprint("importer", __name__, url_prefix="/importer")

DEFAULT_MAX_UPLOAD_MB = 25


@importer_blueprint.errorhandler(ImporterError)
def handle_importer_error(exc: ImporterError):
    current_app.logger.info(
        "Importer request rejected: %s",
        exc,
        extra={"importer_error": type(exc).__name__, "importer_status_code": int(exc.status_code)},
    )
    return jsonify({"error": str(exc)}), exc.status_code


@importer_blueprint.get("/health")
def importer_healthcheck():
    """
    Lightweight health endpoint proving the importer blueprint mounted correctly.
    """
    importer_state = current_app.extensions.get("importer", {})
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": importer_state.get("enabled", False),
                "worker_enabled": importer_state.get("worker_enabled", False),
                "entity_types": list(get_entity_registry().names()),
            }
        ),
        200,
    )


@importer_blueprint.get("/worker_health")
def importer_worker_health():
    """
    Validate importer worker availability via the heartbeat task.
    """
    importer_state = current_app.extensions.get("importer", {})
    timeout_seconds = _as_number(request.args.get("timeout", 5), float, "timeout")
    if timeout_seconds <= 0:
        raise InvalidRequest("timeout must be a positive number.")
    payload = {
        "worker_enabled": importer_state.get("worker_enabled", False),
        "queue": DEFAULT_QUEUE_NAME,
        "timeout_seconds": timeout_seconds,
    }

    if not payload["worker_enabled"]:
        payload["status"] = "disabled"
        payload["message"] = "Worker flag disabled; start the worker or set IMPORTER_WORKER_ENABLED=true."
        return jsonify(payload), 200

    celery_app = get_celery_app(current_app)
    task = celery_app.tasks.get("importer.healthcheck") if celery_app is not None else None
    if task is None:
        payload["status"] = "error"
        payload["error"] = "heartbeat_task_missing"
        return jsonify(payload), 500

    try:
        payload["heartbeat"] = task.apply_async().get(timeout=timeout_seconds)
        payload["status"] = "ok"
        return jsonify(payload), 200
    except CeleryTimeoutError:
        payload["status"] = "timeout"
        return jsonify(payload), 504


def _service() -> ImportService:
    return ImportService(principal=current_user._get_current_object())


def _request_field(name: str, default: Any = None) -> Any:
    """Read a field from a JSON body, or a JSON-encoded form field."""
    if request.is_json:
        return (request.get_json(silent=True) or {}).get(name, default)
    raw = request.form.get(name)
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _enforce_upload_limit() -> None:
    max_mb = float(current_app.config.get("IMPORTER_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB))
    if request.content_length and request.content_length > max_mb * 1024 * 1024:
        raise InvalidRequest(f"Upload exceeds the {max_mb:g} MB importer limit.")


@importer_blueprint.post("/runs")
@login_required_json
def importer_run_create():
    """
    Start an import.

    Accepts a multipart ``file`` (or an existing ``attachment_id``) plus
    ``entity_type``, ``attribute_list`` and ``params``. With ``source_run_id``
    the file is imported using that run's type, mapping and params.
    """
    _enforce_upload_limit()
    service = _service()

    upload = request.files.get("file")
    contents: bytes | None = None
    if upload is not None:
        if not allowed_file(upload.filename or ""):
            raise InvalidRequest("Only .csv files can be imported.")
        contents = upload.read()

    source_run_id = _request_field("source_run_id")
    if source_run_id is not None:
        if contents is None:
            raise InvalidRequest("A file is required when importing with a previous run's settings.")
        result = service.import_file_with_params_id(contents, _as_number(source_run_id, int, "source_run_id"))
    else:
        entity_type = _request_field("entity_type")
        attribute_list = _request_field("attribute_list")
        if not entity_type:
            raise InvalidRequest("entity_type is required.")
        if not isinstance(attribute_list, list):
            raise InvalidRequest("attribute_list must be a list of attribute names.")
        params = _request_field("params") or {}
        if not isinstance(params, dict):
            raise InvalidRequest("params must be an object.")

        attachment_id = _request_field("attachment_id")
        if contents is not None:
            attachment_id = service.upload_file(contents)
        if attachment_id is None:
            raise InvalidRequest("Provide a file or an attachment_id.")
        result = service.run(entity_type, attribute_list, attachment_id, params)

    current_app.logger.info(
        "Importer run requested via API",
        extra={"importer_run_id": result.id, "user_id": current_user.id},
    )
    return jsonify(result.as_dict()), HTTPStatus.CREATED


@importer_blueprint.get("/runs")
@login_required_json
def importer_runs_list():
    raw = request.args
    created_by = None
    if get_access_level(current_user, "Import", "read") is not AccessLevel.ALL:
        created_by = current_user.id
    try:
        filters = RunFilters.coerce(
            page=raw.get("page"),
            page_size=raw.get("per_page") or raw.get("page_size"),
            sort=raw.get("sort"),
            statuses=_split_csv(raw.get("status")),
            entity_types=_split_csv(raw.get("entity_type")),
            created_by_user_id=created_by,
        )
    except ValueError as exc:
        raise InvalidRequest(str(exc)) from exc

    start_time = time.perf_counter()
    result = ImportRunService().list_runs(filters)
    duration = time.perf_counter() - start_time

    current_app.logger.info(
        "Importer runs list retrieved",
        extra={
            "importer_run_count": len(result.items),
            "importer_total_runs": result.total,
            "importer_response_time_ms": round(duration * 1000, 2),
            "user_id": current_user.id,
        },
    )
    return (
        jsonify(
            {
                "runs": result.items,
                "total": result.total,
                "page": result.page,
                "page_size": result.page_size,
                "total_pages": result.total_pages,
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.get("/runs/<int:run_id>")
@login_required_json
def importer_run_detail(run_id: int):
    run_service = ImportRunService()
    run = run_service.get_run(run_id)
    if not AclPermissionChecker().can_read(current_user, run):
        raise PermissionDenied(f"No read access to import run {run_id}.")
    return jsonify(run_service.serialize_run(run)), HTTPStatus.OK


@importer_blueprint.get("/runs/<int:run_id>/<link>")
@login_required_json
def importer_run_linked(run_id: int, link: str):
    linked = ImportRunService().find_linked(
        run_id,
        link,
        principal=current_user,
        permissions=AclPermissionChecker(),
        store=SqlRecordStore(),
        page=request.args.get("page"),
        page_size=request.args.get("per_page") or request.args.get("page_size"),
    )
    return (
        jsonify(
            {
                "records": linked.records,
                "total": linked.total,
                "page": linked.page,
                "page_size": linked.page_size,
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.post("/runs/<int:run_id>/resume")
@login_required_json
def importer_run_resume(run_id: int):
    from_last = _as_bool(_request_field("start_from_last_index", True))
    force = _as_bool(_request_field("force", False))
    result = _service().import_by_id(run_id, start_from_last_index=from_last, force=force)
    return jsonify(result.as_dict()), HTTPStatus.OK


@importer_blueprint.post("/runs/<int:run_id>/revert")
@login_required_json
def importer_run_revert(run_id: int):
    summary = _service().revert(run_id)
    return jsonify(summary.as_dict()), HTTPStatus.OK


@importer_blueprint.post("/runs/<int:run_id>/remove-duplicates")
@login_required_json
def importer_run_remove_duplicates(run_id: int):
    summary = _service().remove_duplicates(run_id)
    return jsonify(summary.as_dict()), HTTPStatus.OK


@importer_blueprint.post("/runs/<int:run_id>/unmark-duplicate")
@login_required_json
def importer_run_unmark_duplicate(run_id: int):
    entity_type = _request_field("entity_type")
    entity_id = _request_field("entity_id")
    if not entity_type or entity_id in (None, ""):
        raise InvalidRequest("entity_type and entity_id are required.")
    _service().unmark_as_duplicate(run_id, entity_type, str(entity_id))
    return jsonify({"run_id": run_id, "entity_type": entity_type, "entity_id": str(entity_id)}), HTTPStatus.OK


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [segment.strip() for segment in value.split(",") if segment.strip()]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_number(value: Any, cast: type, name: str):
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{name} must be a number.") from None
