"""
Accumulate email addresses and phone numbers into primary-flagged lists.

Entries are stored on the record under ``emailAddressData`` /
``phoneNumberData`` as ``{"emailAddress": ..., "primary": ...}`` and
``{"phoneNumber": ..., "type": ..., "primary": ...}``. The primary entry's
value is mirrored onto the base ``emailAddress`` / ``phoneNumber`` attribute.
"""

from __future__ import annotations

from typing import Mapping

from ..contracts import EntityRecord

EMAIL_BASE = "emailAddress"
PHONE_BASE = "phoneNumber"
ALTERNATE_EMAIL_SLOTS = range(2, 5)


def is_alternate_email(attribute: str) -> bool:
    """``emailAddress2`` .. ``emailAddress4``."""

    if not attribute.startswith(EMAIL_BASE) or attribute == EMAIL_BASE:
        return False
    suffix = attribute[len(EMAIL_BASE) :]
    return suffix.isdigit() and int(suffix) in ALTERNATE_EMAIL_SLOTS


def phone_type_label(attribute: str) -> str:
    """``phoneNumberHome_Office`` -> ``Home Office``."""

    return attribute.replace(PHONE_BASE, "", 1).replace("_", " ")


class MultiValueMerger:
    """
    Merges base and alternate multi-value columns of one row.

    ``row_values`` maps every mapped attribute to its raw cell for the row; an
    alternate only becomes primary when no entry exists yet and the base
    column holds nothing for the row.
    """

    def __init__(self, row_values: Mapping[str, str]) -> None:
        self.row_values = row_values

    def _append(self, record: EntityRecord, base: str, entry: dict) -> None:
        data_attribute = f"{base}Data"
        entries = list(record.get(data_attribute) or [])
        entries.append(entry)
        record.set(data_attribute, entries)
        if entry["primary"]:
            record.set(base, entry[base])

    def _alternate_is_primary(self, record: EntityRecord, base: str) -> bool:
        return not record.get(f"{base}Data") and not self.row_values.get(base)

    def add_email(self, record: EntityRecord, value: str) -> None:
        self._append(record, EMAIL_BASE, {EMAIL_BASE: value, "primary": True})

    def add_alternate_email(self, record: EntityRecord, value: str) -> None:
        primary = self._alternate_is_primary(record, EMAIL_BASE)
        self._append(record, EMAIL_BASE, {EMAIL_BASE: value, "primary": primary})

    def add_phone(self, record: EntityRecord, value: str) -> None:
        self._append(record, PHONE_BASE, {PHONE_BASE: value, "primary": True})

    def add_typed_phone(self, record: EntityRecord, attribute: str, value: str) -> None:
        primary = self._alternate_is_primary(record, PHONE_BASE)
        self._append(
            record,
            PHONE_BASE,
            {PHONE_BASE: value, "type": phone_type_label(attribute), "primary": primary},
        )
