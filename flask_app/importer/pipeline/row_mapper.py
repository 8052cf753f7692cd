"""
Build a candidate record from one tokenized row.

The mapper applies, in order: default values, mapped columns (coerced per
attribute type), unmapped alternate email / typed phone columns, currency
backfill, and finally display-name resolution of to-one relations (users
included; related records are never created).
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..contracts import (
    USER_ENTITY,
    AttributeType,
    EntityDescriptor,
    EntityRecord,
    FieldKind,
    RecordStore,
    RelationDescriptor,
    UserDirectory,
)
from ..stores import SqlUserDirectory
from .coercion import ValueCoercer
from .multi_value import EMAIL_BASE, PHONE_BASE, MultiValueMerger, is_alternate_email
from .params import ImportAction, ImportParams
from .person_name import PersonNameParser

logger = logging.getLogger(__name__)


def display_name(record: EntityRecord) -> str | None:
    """Name shown for a related record; person records join their name parts."""

    name = record.get("name")
    if name:
        return name
    parts = [record.get("firstName"), record.get("lastName")]
    joined = " ".join(part for part in parts if part)
    return joined or None


class RowMapper:
    def __init__(
        self,
        descriptor: EntityDescriptor,
        attribute_list: Sequence[str | None],
        params: ImportParams,
        store: RecordStore,
        *,
        default_currency: str | None = None,
        users: UserDirectory | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.attribute_list = list(attribute_list)
        self.params = params
        self.store = store
        self.users = users or SqlUserDirectory()
        self.currency = params.currency or default_currency
        self.coercer = ValueCoercer(params)
        self.name_parser = PersonNameParser(params.person_name_format)
        self.log = log or logger
        self._phone_type_attributes = set(descriptor.phone_type_attributes())
        self._accepts_alternate_emails = descriptor.has_attribute(EMAIL_BASE) and descriptor.has_attribute(
            f"{EMAIL_BASE}Data"
        )

    def _mapped_cells(self, row: Sequence[str]):
        for index, attribute in enumerate(self.attribute_list):
            if not attribute or index >= len(row):
                continue
            yield attribute, row[index]

    def map_row(self, row: Sequence[str]) -> EntityRecord:
        record = EntityRecord(entity_type=self.descriptor.name)
        if self.params.default_values:
            record.update(self.params.default_values)

        row_values = dict(self._mapped_cells(row))
        merger = MultiValueMerger(row_values)

        for attribute, value in self._mapped_cells(row):
            if attribute == "id":
                if self.params.action is ImportAction.CREATE:
                    record.set("id", value)
                continue

            attr_def = self.descriptor.attribute(attribute)
            if attr_def is None:
                self._merge_alternate(record, merger, attribute, value)
                continue

            if value != "":
                if attribute == EMAIL_BASE and attr_def.kind is FieldKind.EMAIL:
                    merger.add_email(record, value)
                    continue
                if attribute == PHONE_BASE and attr_def.kind is FieldKind.PHONE:
                    merger.add_phone(record, value)
                    continue
                if attr_def.kind is FieldKind.PERSON_NAME:
                    self._fill_person_name(record, attribute, value)
                    continue

            if value == "" and attr_def.type is not AttributeType.BOOL:
                continue

            record.set(attribute, self.coercer.coerce(attr_def, value))

        self._backfill_currency(record)
        self._resolve_relations(record)
        return record

    def _merge_alternate(self, record: EntityRecord, merger: MultiValueMerger, attribute: str, value: str) -> None:
        if not value:
            return
        if attribute in self._phone_type_attributes:
            merger.add_typed_phone(record, attribute, value)
        elif self._accepts_alternate_emails and is_alternate_email(attribute):
            merger.add_alternate_email(record, value)
        else:
            self.log.debug("Ignoring column mapped to unknown attribute %s", attribute)

    def _fill_person_name(self, record: EntityRecord, attribute: str, value: str) -> None:
        suffix = attribute[:1].upper() + attribute[1:]
        parsed = self.name_parser.parse(value).as_attributes(suffix)
        for component, component_value in parsed.items():
            if record.get(component):
                continue
            if component_value is None and not component.startswith("last"):
                continue
            record.set(component, self.coercer.prepare(self.descriptor.attribute(component), component_value))

    def _backfill_currency(self, record: EntityRecord) -> None:
        if not self.currency:
            return
        for field in self.descriptor.currency_fields():
            if record.has(field) and not record.get(f"{field}Currency"):
                record.set(f"{field}Currency", self.currency)

    def _lookup(self, relation: RelationDescriptor, where: dict[str, Any], value: Any) -> EntityRecord | None:
        if self.store.has_type(relation.entity):
            return self.store.find_one(relation.entity, where)
        if relation.entity == USER_ENTITY:
            return self.users.find_by_name(value)
        return None

    def _resolve_relations(self, record: EntityRecord) -> None:
        for attribute in self.attribute_list:
            if not attribute:
                continue
            attr_def = self.descriptor.attribute(attribute)
            if attr_def is None or attr_def.type not in (AttributeType.FOREIGN, AttributeType.VARCHAR):
                continue
            if not attr_def.foreign or not attr_def.relation:
                continue
            if attr_def.foreign != "name" and not attr_def.foreign_is_person:
                continue
            if not record.has(attribute):
                continue

            relation = self.descriptor.relations.get(attr_def.relation)
            if attribute != f"{attr_def.relation}Name" or relation is None or relation.kind != "belongsTo":
                continue
            if record.has(f"{attr_def.relation}Id"):
                continue

            value = record.get(attribute)
            where: dict[str, Any]
            if attr_def.foreign_is_person:
                where = self.name_parser.parse(value).as_attributes()
            else:
                where = {"name": value}

            found = self._lookup(relation, where, value)
            if found is None:
                if relation.restricted:
                    self.log.debug(
                        "No %s matched %r for %s; %s records are never created by imports",
                        relation.entity,
                        value,
                        attribute,
                        relation.entity,
                    )
                else:
                    self.log.debug(
                        "No %s matched %r for %s; relation left unresolved",
                        relation.entity,
                        value,
                        attribute,
                    )
                continue

            record.set(f"{attr_def.relation}Id", found.id)
            record.set(f"{attr_def.relation}Name", display_name(found))
            if relation.entity == USER_ENTITY and relation.name == "assignedUser":
                record.assigned_user_id = int(found.id)
