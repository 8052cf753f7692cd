"""Contracts between the import engine and its collaborators."""

from __future__ import annotations

from .entities import (
    AttributeDescriptor,
    AttributeType,
    DuplicatePredicate,
    EntityDescriptor,
    FieldKind,
    RelationDescriptor,
    SchemaProvider,
    attributes,
    phone_type_attribute,
    varchar,
)
from .records import (
    IMPORT_SAVE_OPTIONS,
    REVERT_DELETE_OPTIONS,
    BlobStore,
    EntityRecord,
    JobSubmitter,
    PermissionChecker,
    RecordStore,
    SaveOptions,
    USER_ENTITY,
    UserDirectory,
)

__all__ = [
    "AttributeDescriptor",
    "AttributeType",
    "BlobStore",
    "DuplicatePredicate",
    "EntityDescriptor",
    "EntityRecord",
    "FieldKind",
    "IMPORT_SAVE_OPTIONS",
    "JobSubmitter",
    "PermissionChecker",
    "REVERT_DELETE_OPTIONS",
    "RecordStore",
    "RelationDescriptor",
    "SaveOptions",
    "SchemaProvider",
    "USER_ENTITY",
    "UserDirectory",
    "attributes",
    "phone_type_attribute",
    "varchar",
]
