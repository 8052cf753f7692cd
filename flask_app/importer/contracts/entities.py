"""Entity type descriptors consulted by the import engine.

Each importable entity type declares its attributes (with storage type and
constraints), its to-one relations and the predicate used to flag suspected
duplicates. The engine checks these descriptors before touching any
attribute of a record.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Mapping, Protocol, Tuple

if TYPE_CHECKING:
    from .records import EntityRecord, RecordStore


class AttributeType(str, enum.Enum):
    ID = "id"
    VARCHAR = "varchar"
    TEXT = "text"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATE = "date"
    DATETIME = "datetime"
    JSON_OBJECT = "jsonObject"
    JSON_ARRAY = "jsonArray"
    FOREIGN_ID = "foreignId"
    FOREIGN = "foreign"


class FieldKind(str, enum.Enum):
    """Field-level semantics layered on top of an attribute's storage type."""

    CURRENCY = "currency"
    EMAIL = "email"
    PHONE = "phone"
    PERSON_NAME = "personName"


DuplicatePredicate = Callable[["RecordStore", "EntityRecord"], bool]


@dataclass(frozen=True)
class AttributeDescriptor:
    """Metadata describing one storable attribute."""

    name: str
    type: AttributeType
    max_length: int | None = None
    kind: FieldKind | None = None
    relation: str | None = None
    foreign: str | Tuple[str, ...] | None = None

    @property
    def foreign_is_person(self) -> bool:
        return isinstance(self.foreign, tuple) and "firstName" in self.foreign and "lastName" in self.foreign


@dataclass(frozen=True)
class RelationDescriptor:
    """A to-one (belongs-to) relation from one entity type to another."""

    name: str
    entity: str
    kind: str = "belongsTo"
    # Targets like users and teams are never created implicitly.
    restricted: bool = False


@dataclass(frozen=True)
class EntityDescriptor:
    name: str
    attributes: Mapping[str, AttributeDescriptor]
    relations: Mapping[str, RelationDescriptor] = field(default_factory=dict)
    phone_types: Tuple[str, ...] = ()
    duplicate_predicate: DuplicatePredicate | None = None

    def has_attribute(self, attribute: str) -> bool:
        return attribute in self.attributes

    def attribute(self, attribute: str) -> AttributeDescriptor | None:
        return self.attributes.get(attribute)

    def attribute_type(self, attribute: str) -> AttributeType | None:
        descriptor = self.attributes.get(attribute)
        return descriptor.type if descriptor else None

    def field_kind(self, attribute: str) -> FieldKind | None:
        descriptor = self.attributes.get(attribute)
        return descriptor.kind if descriptor else None

    def currency_fields(self) -> Tuple[str, ...]:
        return tuple(name for name, attr_def in self.attributes.items() if attr_def.kind is FieldKind.CURRENCY)

    def phone_type_attributes(self) -> Tuple[str, ...]:
        """Attribute names of typed phone columns, e.g. ``phoneNumberMobile``."""

        if self.field_kind("phoneNumber") is not FieldKind.PHONE:
            return ()
        return tuple(phone_type_attribute(phone_type) for phone_type in self.phone_types)


class SchemaProvider(Protocol):
    def get(self, entity_type: str) -> EntityDescriptor | None: ...

    def has(self, entity_type: str) -> bool: ...


def varchar(name: str, max_length: int | None = 255, **kwargs) -> AttributeDescriptor:
    return AttributeDescriptor(name=name, type=AttributeType.VARCHAR, max_length=max_length, **kwargs)


def attributes(*descriptors: AttributeDescriptor) -> dict[str, AttributeDescriptor]:
    return {attr_def.name: attr_def for attr_def in descriptors}


def phone_type_attribute(phone_type: str) -> str:
    """``"Mobile"`` -> ``"phoneNumberMobile"``; spaces become underscores."""

    return "phoneNumber" + (phone_type[:1].upper() + phone_type[1:]).replace(" ", "_")
