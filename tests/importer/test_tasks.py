from __future__ import annotations

import json
from unittest.mock import Mock

import pytest

from flask_app.importer import get_celery_app, tasks
from flask_app.importer.celery_app import DEFAULT_QUEUE_NAME
from flask_app.importer.exceptions import BadJobData, NotFound, PermissionDenied
from flask_app.importer.pipeline import IDLE_IMPORT_JOB, ImportService
from flask_app.models import ImportRun, ImportRunStatus, Record, db


@pytest.fixture
def pending_run(importer_app, admin_user, attachment):
    jobs = Mock()
    result = ImportService(principal=admin_user, jobs=jobs).run(
        "Contact",
        ["firstName", "lastName"],
        attachment("Ada,Lovelace\nAlan,Turing\n"),
        {"idleMode": True},
    )
    _, payload = jobs.enqueue.call_args.args
    return result, payload


@pytest.mark.parametrize("missing", ["userId", "importAttributeList", "params", "entityType"])
def test_payload_validation(missing):
    payload = {"userId": 1, "importAttributeList": ["lastName"], "params": {}, "entityType": "Contact"}
    payload[missing] = None
    with pytest.raises(BadJobData, match=missing):
        tasks._validate_payload(payload)

    with pytest.raises(BadJobData):
        tasks._validate_payload({})


def test_idle_import_task_executes_pending_run(pending_run):
    result, payload = pending_run
    assert db.session.get(ImportRun, result.id).status is ImportRunStatus.PENDING

    outcome = tasks.run_idle_import.run(payload=payload)

    assert outcome["id"] == result.id
    assert outcome["countCreated"] == 2
    assert outcome["status"] == "complete"
    assert db.session.get(ImportRun, result.id).status is ImportRunStatus.COMPLETE
    assert Record.query.count() == 2


def test_idle_import_task_rejects_unknown_or_inactive_user(pending_run, admin_user):
    _, payload = pending_run

    with pytest.raises(NotFound):
        tasks.run_idle_import.run(payload={**payload, "userId": 9999})

    admin_user.is_active = False
    db.session.commit()
    with pytest.raises(PermissionDenied):
        tasks.run_idle_import.run(payload=payload)


def test_job_submitter_routes_to_imports_queue(importer_app, monkeypatch):
    task = Mock()
    task.apply_async.return_value = Mock(id="task-123")
    monkeypatch.setitem(tasks.TASKS_BY_JOB, IDLE_IMPORT_JOB, task)

    async_result = tasks.CeleryJobSubmitter().enqueue(IDLE_IMPORT_JOB, {"importId": 7})

    assert async_result.id == "task-123"
    task.apply_async.assert_called_once_with(kwargs={"payload": {"importId": 7}}, queue=DEFAULT_QUEUE_NAME)

    with pytest.raises(BadJobData):
        tasks.CeleryJobSubmitter().enqueue("importer.unknown", {})


def test_celery_defaults_to_sqlite_transport(importer_app):
    celery_app = get_celery_app(importer_app)

    assert celery_app.conf.broker_url.startswith("sqla+sqlite:///")
    assert celery_app.conf.result_backend.startswith("db+sqlite:///")
    assert celery_app.conf.task_default_queue == DEFAULT_QUEUE_NAME
    assert celery_app.conf.task_routes[IDLE_IMPORT_JOB] == {"queue": DEFAULT_QUEUE_NAME}
    assert IDLE_IMPORT_JOB in celery_app.tasks
    assert "importer.healthcheck" in celery_app.tasks


def test_worker_ping_with_eager_tasks(importer_app, runner):
    celery_app = get_celery_app(importer_app)
    celery_app.conf.task_always_eager = True
    try:
        result = runner.invoke(args=["importer", "worker", "ping", "--timeout", "2"])
    finally:
        celery_app.conf.task_always_eager = False

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output[result.output.index("{") :])
    assert payload["status"] == "ok"
