from __future__ import annotations

import pytest

from flask_app.importer.contracts import EntityRecord
from flask_app.importer.pipeline import ImportParams, RowMapper
from flask_app.importer.registry import get_entity_registry
from flask_app.models import User, db


def _mapper(store, entity_type, attribute_list, default_currency="USD", **options):
    descriptor = get_entity_registry().get(entity_type)
    return RowMapper(
        descriptor,
        attribute_list,
        ImportParams.coerce(options),
        store,
        default_currency=default_currency,
    )


@pytest.fixture
def acme(store):
    record = store.save(EntityRecord(entity_type="Account", values={"name": "Acme Corp"}))
    db.session.commit()
    return record


def test_person_name_column_is_split_and_unmapped_columns_ignored(store):
    mapper = _mapper(store, "Contact", ["name", None, "age"], personNameFormat="f l")

    record = mapper.map_row(["John Smith", "ignored", "30"])

    assert record.values == {"firstName": "John", "lastName": "Smith", "age": 30}


def test_defaults_apply_and_mapped_cells_override_them(store):
    mapper = _mapper(
        store,
        "Contact",
        ["lastName", "title"],
        defaultValues={"title": "Volunteer", "addressCity": "Kansas City"},
    )

    record = mapper.map_row(["Smith", "Mentor"])

    assert record.get("title") == "Mentor"
    assert record.get("addressCity") == "Kansas City"


def test_empty_cells_are_skipped_except_for_booleans(store):
    mapper = _mapper(store, "Contact", ["lastName", "title", "doNotCall"])

    record = mapper.map_row(["Smith", "", ""])

    assert not record.has("title")
    assert record.get("doNotCall") is False


def test_short_rows_leave_trailing_attributes_unset(store):
    mapper = _mapper(store, "Contact", ["lastName", "title", "age"])

    record = mapper.map_row(["Smith"])

    assert record.values == {"lastName": "Smith"}


def test_id_column_only_applies_when_creating(store):
    row = ["abc123", "Smith"]
    assert _mapper(store, "Contact", ["id", "lastName"]).map_row(row).id == "abc123"
    assert _mapper(store, "Contact", ["id", "lastName"], action="update").map_row(row).id is None


def test_currency_backfill_uses_run_currency_then_default(store):
    record = _mapper(store, "Account", ["name", "annualRevenue"], currency="EUR").map_row(["Acme", "1.000,50"])
    assert record.get("annualRevenueCurrency") == "EUR"

    record = _mapper(store, "Account", ["name", "annualRevenue"]).map_row(["Acme", "1000"])
    assert record.get("annualRevenue") == 1000.0
    assert record.get("annualRevenueCurrency") == "USD"


def test_explicit_currency_column_is_kept(store):
    mapper = _mapper(store, "Account", ["annualRevenue", "annualRevenueCurrency"], currency="EUR")
    assert mapper.map_row(["10", "GBP"]).get("annualRevenueCurrency") == "GBP"


def test_alternate_email_and_typed_phone_columns_merge(store):
    mapper = _mapper(store, "Contact", ["lastName", "emailAddress", "emailAddress2", "phoneNumberMobile"])

    record = mapper.map_row(["Smith", "", "alt@example.com", "555-0199"])

    assert record.get("emailAddress") == "alt@example.com"
    assert record.get("emailAddressData") == [{"emailAddress": "alt@example.com", "primary": True}]
    assert record.get("phoneNumber") == "555-0199"
    assert record.get("phoneNumberData") == [{"phoneNumber": "555-0199", "type": "Mobile", "primary": True}]


def test_varchar_values_are_truncated(store):
    record = _mapper(store, "Account", ["annualRevenueCurrency"]).map_row(["EURO"])
    assert record.get("annualRevenueCurrency") == "EUR"


def test_relation_name_resolves_to_existing_record(store, acme):
    mapper = _mapper(store, "Contact", ["lastName", "accountName"])

    record = mapper.map_row(["Smith", "acme corp"])

    assert record.get("accountId") == acme.id
    assert record.get("accountName") == "Acme Corp"


def test_unmatched_relation_is_left_unresolved(store, acme):
    record = _mapper(store, "Contact", ["lastName", "accountName"]).map_row(["Smith", "Globex"])

    assert record.get("accountName") == "Globex"
    assert not record.has("accountId")


def test_person_relation_resolves_with_name_format(store):
    contact = store.save(EntityRecord(entity_type="Contact", values={"firstName": "Jane", "lastName": "Doe"}))
    db.session.commit()
    mapper = _mapper(store, "Opportunity", ["name", "contactName"], personNameFormat="f l")

    record = mapper.map_row(["Renewal", "Jane Doe"])

    assert record.get("contactId") == contact.id
    assert record.get("contactName") == "Jane Doe"


def test_assigned_user_resolves_by_user_name(store, admin_user):
    record = _mapper(store, "Account", ["name", "assignedUserName"]).map_row(["Acme", "admin"])

    assert record.get("assignedUserId") == str(admin_user.id)
    assert record.get("assignedUserName") == "Admin User"
    assert record.assigned_user_id == admin_user.id


def test_assigned_user_resolves_by_full_name(store, admin_user, test_user):
    record = _mapper(store, "Contact", ["lastName", "assignedUserName"]).map_row(["Smith", "test USER"])

    assert record.get("assignedUserId") == str(test_user.id)
    assert record.assigned_user_id == test_user.id


def test_unknown_or_inactive_user_is_never_created(store, test_user):
    test_user.is_active = False
    db.session.commit()
    mapper = _mapper(store, "Account", ["name", "assignedUserName"])

    for name in ("testuser", "ghost"):
        record = mapper.map_row(["Acme", name])
        assert record.get("assignedUserName") == name
        assert not record.has("assignedUserId")
        assert record.assigned_user_id is None

    assert User.query.count() == 1
