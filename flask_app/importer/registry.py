"""
Entity registry for the import engine.

Entity types register their attribute descriptors here so the engine can
validate mappings, coerce values and resolve relations without loading any
persistence code.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable, Mapping, Sequence

from .contracts import (
    AttributeDescriptor,
    AttributeType,
    EntityDescriptor,
    EntityRecord,
    FieldKind,
    RecordStore,
    RelationDescriptor,
    attributes,
    varchar,
)

PERSON_FOREIGN = ("firstName", "lastName")
DEFAULT_PHONE_TYPES = ("Mobile", "Office", "Home", "Fax", "Other")


def _exists_other(store: RecordStore, record: EntityRecord, where: Mapping[str, object]) -> bool:
    for match in store.find(record.entity_type, where, limit=2):
        if record.id is None or match.id != record.id:
            return True
    return False


def person_is_duplicate(store: RecordStore, record: EntityRecord) -> bool:
    """Same primary email address, or same first and last name."""

    email = record.get("emailAddress")
    if email and _exists_other(store, record, {"emailAddress": email}):
        return True
    last_name = record.get("lastName")
    if not last_name:
        return False
    return _exists_other(store, record, {"firstName": record.get("firstName"), "lastName": last_name})


def named_is_duplicate(store: RecordStore, record: EntityRecord) -> bool:
    name = record.get("name")
    if not name:
        return False
    return _exists_other(store, record, {"name": name})


def _person_attributes() -> list[AttributeDescriptor]:
    return [
        varchar("name", kind=FieldKind.PERSON_NAME),
        varchar("salutationName", 20),
        varchar("firstName", 100),
        varchar("middleName", 100),
        varchar("lastName", 100),
        varchar("emailAddress", kind=FieldKind.EMAIL),
        AttributeDescriptor("emailAddressData", AttributeType.JSON_ARRAY),
        varchar("phoneNumber", 36, kind=FieldKind.PHONE),
        AttributeDescriptor("phoneNumberData", AttributeType.JSON_ARRAY),
        AttributeDescriptor("doNotCall", AttributeType.BOOL),
        AttributeDescriptor("birthday", AttributeType.DATE),
        AttributeDescriptor("description", AttributeType.TEXT),
        varchar("addressStreet"),
        varchar("addressCity", 100),
        varchar("addressCountry", 100),
        AttributeDescriptor("assignedUserId", AttributeType.FOREIGN_ID),
        AttributeDescriptor(
            "assignedUserName", AttributeType.FOREIGN, relation="assignedUser", foreign="name"
        ),
    ]


def _build_registry() -> "OrderedDict[str, EntityDescriptor]":
    assigned_user = RelationDescriptor("assignedUser", "User", restricted=True)

    account = EntityDescriptor(
        name="Account",
        attributes=attributes(
            varchar("name", 249),
            varchar("website"),
            varchar("emailAddress", kind=FieldKind.EMAIL),
            AttributeDescriptor("emailAddressData", AttributeType.JSON_ARRAY),
            varchar("phoneNumber", 36, kind=FieldKind.PHONE),
            AttributeDescriptor("phoneNumberData", AttributeType.JSON_ARRAY),
            varchar("type", 100),
            varchar("industry", 100),
            AttributeDescriptor("annualRevenue", AttributeType.FLOAT, kind=FieldKind.CURRENCY),
            varchar("annualRevenueCurrency", 3),
            AttributeDescriptor("employees", AttributeType.INT),
            AttributeDescriptor("description", AttributeType.TEXT),
            AttributeDescriptor("assignedUserId", AttributeType.FOREIGN_ID),
            AttributeDescriptor(
                "assignedUserName", AttributeType.FOREIGN, relation="assignedUser", foreign="name"
            ),
        ),
        relations={"assignedUser": assigned_user},
        phone_types=DEFAULT_PHONE_TYPES,
        duplicate_predicate=named_is_duplicate,
    )

    contact = EntityDescriptor(
        name="Contact",
        attributes=attributes(
            *_person_attributes(),
            varchar("title", 100),
            AttributeDescriptor("accountId", AttributeType.FOREIGN_ID),
            AttributeDescriptor("accountName", AttributeType.FOREIGN, relation="account", foreign="name"),
            AttributeDescriptor("age", AttributeType.INT),
            AttributeDescriptor("preferences", AttributeType.JSON_OBJECT),
            AttributeDescriptor("tags", AttributeType.JSON_ARRAY),
            AttributeDescriptor("lastContactedAt", AttributeType.DATETIME),
        ),
        relations={
            "account": RelationDescriptor("account", "Account"),
            "assignedUser": assigned_user,
        },
        phone_types=DEFAULT_PHONE_TYPES,
        duplicate_predicate=person_is_duplicate,
    )

    lead = EntityDescriptor(
        name="Lead",
        attributes=attributes(
            *_person_attributes(),
            varchar("status", 100),
            varchar("source", 100),
            varchar("accountName"),
            AttributeDescriptor("opportunityAmount", AttributeType.FLOAT, kind=FieldKind.CURRENCY),
            varchar("opportunityAmountCurrency", 3),
        ),
        relations={"assignedUser": assigned_user},
        phone_types=DEFAULT_PHONE_TYPES,
        duplicate_predicate=person_is_duplicate,
    )

    opportunity = EntityDescriptor(
        name="Opportunity",
        attributes=attributes(
            varchar("name", 249),
            AttributeDescriptor("amount", AttributeType.FLOAT, kind=FieldKind.CURRENCY),
            varchar("amountCurrency", 3),
            varchar("stage", 100),
            AttributeDescriptor("probability", AttributeType.INT),
            AttributeDescriptor("closeDate", AttributeType.DATE),
            AttributeDescriptor("accountId", AttributeType.FOREIGN_ID),
            AttributeDescriptor("accountName", AttributeType.FOREIGN, relation="account", foreign="name"),
            AttributeDescriptor("contactId", AttributeType.FOREIGN_ID),
            AttributeDescriptor(
                "contactName", AttributeType.FOREIGN, relation="contact", foreign=PERSON_FOREIGN
            ),
            AttributeDescriptor("description", AttributeType.TEXT),
            AttributeDescriptor("assignedUserId", AttributeType.FOREIGN_ID),
            AttributeDescriptor(
                "assignedUserName", AttributeType.FOREIGN, relation="assignedUser", foreign="name"
            ),
        ),
        relations={
            "account": RelationDescriptor("account", "Account"),
            "contact": RelationDescriptor("contact", "Contact"),
            "assignedUser": assigned_user,
        },
        duplicate_predicate=named_is_duplicate,
    )

    return OrderedDict((descriptor.name, descriptor) for descriptor in (account, contact, lead, opportunity))


class EntityRegistry:
    """Schema provider backed by in-code entity descriptors."""

    def __init__(self, descriptors: Iterable[EntityDescriptor] | None = None) -> None:
        if descriptors is None:
            self._descriptors = _build_registry()
        else:
            self._descriptors = OrderedDict((descriptor.name, descriptor) for descriptor in descriptors)

    def get(self, entity_type: str) -> EntityDescriptor | None:
        return self._descriptors.get(entity_type)

    def has(self, entity_type: str) -> bool:
        return entity_type in self._descriptors

    def names(self) -> tuple[str, ...]:
        return tuple(self._descriptors)

    def register(self, descriptor: EntityDescriptor) -> None:
        self._descriptors[descriptor.name] = descriptor


_default_registry: EntityRegistry | None = None


def get_entity_registry() -> EntityRegistry:
    """Return the process-wide registry of importable entity types."""

    global _default_registry
    if _default_registry is None:
        _default_registry = EntityRegistry()
    return _default_registry


def resolve_entity(entity_type: str, registry: EntityRegistry | None = None) -> EntityDescriptor:
    """
    Map an entity type name to its descriptor, raising on unknown names.
    """
    registry = registry or get_entity_registry()
    descriptor = registry.get(entity_type)
    if descriptor is None:
        raise ValueError(
            f"Unknown entity type '{entity_type}'. Known types: " + ", ".join(registry.names()) + "."
        )
    return descriptor


def validate_attribute_list(descriptor: EntityDescriptor, attribute_list: Sequence[str | None]) -> list[str]:
    """Return mapped attribute names the entity type cannot accept."""

    allowed_extra = set(descriptor.phone_type_attributes())
    allowed_extra.update(f"emailAddress{suffix}" for suffix in range(2, 5))
    allowed_extra.add("id")
    unknown = []
    for attribute in attribute_list:
        if not attribute:
            continue
        if descriptor.has_attribute(attribute) or attribute in allowed_extra:
            continue
        unknown.append(attribute)
    return unknown
