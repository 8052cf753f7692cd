from __future__ import annotations

import io
import json

import pytest

from flask_app.importer.contracts import EntityRecord
from flask_app.models import ImportEntity, ImportRun, ImportRunStatus, Record, db


@pytest.fixture
def admin_client(importer_app, client, login, admin_user):
    login(admin_user)
    return client


def _upload(client, text, **fields):
    data = {key: json.dumps(value) if not isinstance(value, str) else value for key, value in fields.items()}
    data["file"] = (io.BytesIO(text.encode("utf-8")), "people.csv")
    return client.post("/importer/runs", data=data, content_type="multipart/form-data")


def test_health_reports_entity_types(importer_app, client):
    response = client.get("/importer/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "ok"
    assert payload["enabled"] is True
    assert "Contact" in payload["entity_types"]


def test_worker_health_when_worker_disabled(importer_app, client):
    response = client.get("/importer/worker_health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "disabled"


@pytest.mark.parametrize("timeout", ["soon", "0"])
def test_worker_health_rejects_bad_timeout(importer_app, client, timeout):
    response = client.get(f"/importer/worker_health?timeout={timeout}")
    assert response.status_code == 400


@pytest.mark.parametrize(
    ("method", "url"),
    [
        ("get", "/importer/runs"),
        ("post", "/importer/runs"),
        ("get", "/importer/runs/1"),
        ("post", "/importer/runs/1/revert"),
    ],
)
def test_endpoints_require_login(importer_app, client, method, url):
    response = getattr(client, method)(url)
    assert response.status_code == 401
    assert response.get_json() == {"error": "Authentication required."}


def test_upload_and_run(admin_client):
    response = _upload(
        admin_client,
        "First,Last\nAda,Lovelace\nAlan,Turing\n",
        entity_type="Contact",
        attribute_list=["firstName", "lastName"],
        params={"headerRow": True},
    )

    assert response.status_code == 201
    payload = response.get_json()
    assert payload["countCreated"] == 2
    assert payload["status"] == "complete"
    assert Record.query.filter_by(entity_type="Contact").count() == 2


def test_run_with_existing_attachment_as_json(admin_client, attachment):
    attachment_id = attachment("Acme\n")
    response = admin_client.post(
        "/importer/runs",
        json={"entity_type": "Account", "attribute_list": ["name"], "attachment_id": attachment_id},
    )
    assert response.status_code == 201
    assert response.get_json()["countCreated"] == 1


def test_run_with_previous_run_settings(admin_client):
    first = _upload(admin_client, "Ada,Lovelace\n", entity_type="Contact", attribute_list=["firstName", "lastName"])
    source_id = first.get_json()["id"]

    response = _upload(admin_client, "Alan,Turing\n", source_run_id=str(source_id))

    assert response.status_code == 201
    assert response.get_json()["id"] != source_id
    assert response.get_json()["countCreated"] == 1


def test_malformed_source_run_id_is_rejected(admin_client):
    response = _upload(admin_client, "Alan,Turing\n", source_run_id="latest")

    assert response.status_code == 400
    assert response.get_json()["error"] == "source_run_id must be a number."


@pytest.mark.parametrize(
    ("fields", "message"),
    [
        ({"attribute_list": ["lastName"]}, "entity_type is required."),
        ({"entity_type": "Contact", "attribute_list": "lastName"}, "attribute_list must be a list of attribute names."),
        ({"entity_type": "Contact", "attribute_list": ["lastName"], "params": [1]}, "params must be an object."),
    ],
)
def test_run_request_validation(admin_client, fields, message):
    response = _upload(admin_client, "Lovelace\n", **fields)
    assert response.status_code == 400
    assert response.get_json() == {"error": message}


def test_non_csv_upload_rejected(admin_client):
    response = admin_client.post(
        "/importer/runs",
        data={"file": (io.BytesIO(b"x"), "people.xlsx"), "entity_type": "Contact", "attribute_list": '["lastName"]'},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400


def test_missing_attachment_maps_to_404(admin_client):
    response = admin_client.post(
        "/importer/runs",
        json={"entity_type": "Contact", "attribute_list": ["lastName"], "attachment_id": 9999},
    )
    assert response.status_code == 404
    assert "not found" in response.get_json()["error"]


def test_list_and_detail(admin_client, run_factory):
    run = run_factory(status=ImportRunStatus.FAILED)
    run_factory(status=ImportRunStatus.COMPLETE)

    response = admin_client.get("/importer/runs?status=failed")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["total"] == 1
    assert payload["runs"][0]["id"] == run.id

    detail = admin_client.get(f"/importer/runs/{run.id}")
    assert detail.status_code == 200
    assert detail.get_json()["status"] == "failed"

    assert admin_client.get("/importer/runs/9999").status_code == 404
    assert admin_client.get("/importer/runs?sort=bogus").status_code == 400


def test_regular_users_only_see_their_own_runs(importer_app, client, login, test_user, run_factory):
    own = run_factory(created_by=test_user)
    foreign = run_factory()
    login(test_user)

    payload = client.get("/importer/runs").get_json()
    assert [item["id"] for item in payload["runs"]] == [own.id]
    assert client.get(f"/importer/runs/{foreign.id}").status_code == 403


def test_linked_records(admin_client, run_factory, store):
    record = store.save(EntityRecord(entity_type="Contact", values={"lastName": "Hopper"}))
    db.session.commit()
    run = run_factory(outcomes=[{"entity_id": record.id, "is_imported": True, "is_duplicate": True}])

    response = admin_client.get(f"/importer/runs/{run.id}/duplicates")
    assert response.status_code == 200
    assert response.get_json()["records"][0]["lastName"] == "Hopper"

    assert admin_client.get(f"/importer/runs/{run.id}/bogus").status_code == 400


def test_resume_requires_force_for_failed_runs(admin_client, run_factory):
    run = run_factory(status=ImportRunStatus.FAILED)
    response = admin_client.post(f"/importer/runs/{run.id}/resume", json={})
    assert response.status_code == 400
    assert "force" in response.get_json()["error"]


def test_resume_parked_run(admin_client):
    parked = _upload(
        admin_client,
        "Ada,Lovelace\n",
        entity_type="Contact",
        attribute_list=["firstName", "lastName"],
        params={"manualMode": True},
    ).get_json()
    assert parked["manualMode"] is True

    response = admin_client.post(f"/importer/runs/{parked['id']}/resume", json={"start_from_last_index": False})
    assert response.status_code == 200
    assert response.get_json()["countCreated"] == 1


def test_revert_remove_duplicates_and_unmark(admin_client, run_factory, store):
    record = store.save(EntityRecord(entity_type="Contact", values={"lastName": "Hopper"}))
    db.session.commit()
    run = run_factory(outcomes=[{"entity_id": record.id, "is_imported": True, "is_duplicate": True}])

    response = admin_client.post(
        f"/importer/runs/{run.id}/unmark-duplicate", json={"entity_type": "Contact", "entity_id": record.id}
    )
    assert response.status_code == 200
    assert ImportEntity.query.filter_by(import_id=run.id).one().is_duplicate is False

    response = admin_client.post(f"/importer/runs/{run.id}/remove-duplicates")
    assert response.get_json()["hard_deleted"] == 0

    response = admin_client.post(f"/importer/runs/{run.id}/revert")
    assert response.status_code == 200
    assert response.get_json()["hard_deleted"] == 1
    assert db.session.get(ImportRun, run.id) is None


def test_unmark_requires_identifiers(admin_client, run_factory):
    run = run_factory()
    response = admin_client.post(f"/importer/runs/{run.id}/unmark-duplicate", json={"entity_type": "Contact"})
    assert response.status_code == 400
