from __future__ import annotations

import pytest

from flask_app.importer.contracts import EntityRecord
from flask_app.importer.pipeline import DuplicateResolver, ImportParams, RowMapper
from flask_app.importer.registry import get_entity_registry
from flask_app.models import Record, db
from flask_app.utils.permissions import AclPermissionChecker

ATTRIBUTES = ["emailAddress", "firstName", "lastName"]


@pytest.fixture
def existing(store, admin_user):
    record = EntityRecord(
        entity_type="Contact",
        values={"emailAddress": "jane@example.com", "firstName": "Jane", "lastName": "Doe"},
        assigned_user_id=admin_user.id,
    )
    store.save(record)
    db.session.commit()
    return record


def _resolve(store, principal, row, attribute_list=ATTRIBUTES, **options):
    descriptor = get_entity_registry().get("Contact")
    params = ImportParams.coerce(options)
    resolver = DuplicateResolver(descriptor, attribute_list, params, store, AclPermissionChecker(), principal)
    candidate = RowMapper(descriptor, attribute_list, params, store).map_row(row)
    return resolver, resolver.resolve(candidate, row)


def test_create_flags_suspected_duplicate(store, admin_user, existing):
    _, outcome = _resolve(store, admin_user, ["other@example.com", "Jane", "Doe"])

    assert outcome.created and not outcome.updated
    assert outcome.duplicate is True
    assert store.count("Contact") == 2


def test_create_without_match_is_not_duplicate(store, admin_user, existing):
    _, outcome = _resolve(store, admin_user, ["new@example.com", "John", "Smith"])
    assert outcome.created and not outcome.duplicate


def test_skip_duplicate_checking(store, admin_user, existing):
    _, outcome = _resolve(store, admin_user, ["jane@example.com", "Jane", "Doe"], skipDuplicateChecking=True)
    assert outcome.created and not outcome.duplicate


def test_created_record_is_assigned_to_the_importing_user(store, admin_user):
    _, outcome = _resolve(store, admin_user, ["new@example.com", "John", "Smith"])
    assert store.get("Contact", outcome.entity_id).assigned_user_id == admin_user.id


def test_update_matches_key_case_insensitively(store, admin_user, existing):
    _, outcome = _resolve(store, admin_user, ["JANE@example.com", "Janet", "Doe"], action="update", updateBy=[0])

    assert outcome.updated and not outcome.created and not outcome.duplicate
    assert outcome.entity_id == existing.id
    assert store.get("Contact", existing.id).get("firstName") == "Janet"
    assert store.count("Contact") == 1


def test_update_never_creates_on_a_miss(store, admin_user, existing):
    _, outcome = _resolve(store, admin_user, ["nobody@example.com", "No", "Body"], action="update", updateBy=[0])
    assert outcome is None
    assert store.count("Contact") == 1


def test_create_and_update_creates_on_a_miss(store, admin_user, existing):
    _, outcome = _resolve(
        store, admin_user, ["nobody@example.com", "No", "Body"], action="createAndUpdate", updateBy=[0]
    )
    assert outcome.created
    assert store.count("Contact") == 2


def test_matching_without_update_by_skips_and_counts(store, admin_user, existing):
    resolver, outcome = _resolve(store, admin_user, ["jane@example.com", "Jane", "Doe"], action="update")
    assert outcome is None
    assert resolver.rows_skipped_no_key == 1


def test_update_skips_records_the_user_cannot_edit(store, test_user, existing):
    _, outcome = _resolve(store, test_user, ["jane@example.com", "Janet", "Doe"], action="update", updateBy=[0])

    assert outcome is None
    assert store.get("Contact", existing.id).get("firstName") == "Jane"


def test_explicit_id_replaces_existing_record(store, admin_user, existing):
    _, outcome = _resolve(store, admin_user, [existing.id, "Replaced"], attribute_list=["id", "lastName"])

    assert outcome.created
    assert outcome.entity_id == existing.id
    assert Record.query.filter_by(entity_type="Contact").count() == 1
    assert store.get("Contact", existing.id).values == {"lastName": "Replaced"}


@pytest.fixture
def without_email(store, admin_user):
    record = EntityRecord(
        entity_type="Contact",
        values={"firstName": "No", "lastName": "Email"},
        assigned_user_id=admin_user.id,
    )
    store.save(record)
    db.session.commit()
    return record


def test_update_with_blank_key_skips_row(store, admin_user, without_email):
    resolver, outcome = _resolve(store, admin_user, ["", "Overwritten", "Person"], action="update", updateBy=[0])

    assert outcome is None
    assert resolver.rows_skipped_no_key == 1
    assert store.get("Contact", without_email.id).get("lastName") == "Email"


def test_create_and_update_with_blank_key_creates(store, admin_user, without_email):
    _, outcome = _resolve(
        store, admin_user, ["  ", "New", "Person"], action="createAndUpdate", updateBy=[0]
    )

    assert outcome.created
    assert outcome.entity_id != without_email.id
    assert store.get("Contact", without_email.id).get("lastName") == "Email"
    assert store.count("Contact") == 2


def test_store_lookup_compares_text_case_insensitively(store, existing, without_email):
    assert [r.id for r in store.find("Contact", {"emailAddress": " JANE@Example.com "})] == [existing.id]
    assert [r.id for r in store.find("Contact", {"emailAddress": None})] == [without_email.id]
    assert store.find("Contact", {"emailAddress": ""}) == []
    assert len(store.find("Contact", {}, limit=1)) == 1
