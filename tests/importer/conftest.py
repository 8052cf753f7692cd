from __future__ import annotations

from datetime import timedelta

import pytest

from flask_app.importer import init_importer
from flask_app.importer.pipeline import ImportService
from flask_app.importer.stores import SqlBlobStore, SqlRecordStore
from flask_app.models import ImportEntity, ImportRun, ImportRunStatus, db
from flask_app.models.base import utc_now


@pytest.fixture
def importer_app(app):
    app.config.update({"IMPORTER_ENABLED": True})
    init_importer(app)
    yield app


@pytest.fixture
def store(importer_app):
    return SqlRecordStore()


@pytest.fixture
def attachment(importer_app):
    """Store CSV text as an import attachment and return its id."""

    def _attachment(text: str) -> int:
        attachment_id = SqlBlobStore().store(text)
        db.session.commit()
        return attachment_id

    return _attachment


@pytest.fixture
def service(importer_app, admin_user):
    return ImportService(principal=admin_user)


@pytest.fixture
def run_factory(importer_app, admin_user):
    """Persist an import run, optionally backdated, with its outcome log."""

    def _factory(
        *,
        entity_type: str = "Contact",
        status: ImportRunStatus = ImportRunStatus.COMPLETE,
        age_days: float = 0,
        created_by=None,
        outcomes=(),
    ) -> ImportRun:
        owner = created_by or admin_user
        run = ImportRun(
            entity_type=entity_type,
            status=status,
            attribute_list=["firstName", "lastName"],
            params_json={"action": "create"},
            created_by_user_id=owner.id,
        )
        run.created_at = utc_now() - timedelta(days=age_days)
        db.session.add(run)
        db.session.flush()
        for outcome in outcomes:
            db.session.add(ImportEntity(import_id=run.id, entity_type=entity_type, **outcome))
        db.session.commit()
        return run

    return _factory
