from __future__ import annotations

from flask_app.importer.contracts import EntityRecord
from flask_app.importer.pipeline import MultiValueMerger
from flask_app.importer.pipeline.multi_value import is_alternate_email, phone_type_label


def _record() -> EntityRecord:
    return EntityRecord(entity_type="Contact")


def test_base_email_is_primary_and_mirrored():
    record = _record()
    merger = MultiValueMerger({"emailAddress": "a@example.com", "emailAddress2": "b@example.com"})

    merger.add_email(record, "a@example.com")
    merger.add_alternate_email(record, "b@example.com")

    assert record.get("emailAddress") == "a@example.com"
    assert record.get("emailAddressData") == [
        {"emailAddress": "a@example.com", "primary": True},
        {"emailAddress": "b@example.com", "primary": False},
    ]


def test_alternate_email_becomes_primary_when_base_cell_is_empty():
    record = _record()
    merger = MultiValueMerger({"emailAddress": "", "emailAddress3": "c@example.com"})

    merger.add_alternate_email(record, "c@example.com")

    assert record.get("emailAddress") == "c@example.com"
    assert record.get("emailAddressData") == [{"emailAddress": "c@example.com", "primary": True}]


def test_typed_phone_carries_its_label():
    record = _record()
    merger = MultiValueMerger({"phoneNumberHome_Office": "555-0100"})

    merger.add_typed_phone(record, "phoneNumberHome_Office", "555-0100")

    assert record.get("phoneNumber") == "555-0100"
    assert record.get("phoneNumberData") == [{"phoneNumber": "555-0100", "type": "Home Office", "primary": True}]


def test_typed_phone_after_base_phone_is_not_primary():
    record = _record()
    merger = MultiValueMerger({"phoneNumber": "555-0101", "phoneNumberMobile": "555-0102"})

    merger.add_phone(record, "555-0101")
    merger.add_typed_phone(record, "phoneNumberMobile", "555-0102")

    assert record.get("phoneNumber") == "555-0101"
    assert [entry["primary"] for entry in record.get("phoneNumberData")] == [True, False]


def test_alternate_email_slots():
    assert is_alternate_email("emailAddress2")
    assert is_alternate_email("emailAddress4")
    assert not is_alternate_email("emailAddress")
    assert not is_alternate_email("emailAddress5")
    assert not is_alternate_email("emailAddressData")
    assert phone_type_label("phoneNumberMobile") == "Mobile"
