"""Collaborator contracts consumed by the import engine.

The engine never touches SQLAlchemy directly; it talks to a record store, a
permission checker, a schema provider, a blob store, a job submitter and a
user directory through the protocols below. Concrete implementations live in
``flask_app.importer.stores`` and ``flask_app.utils.permissions``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class SaveOptions:
    """Side-effect switches passed to record store writes."""

    skip_history: bool = False
    skip_notifications: bool = False
    silent: bool = False
    import_mode: bool = False


IMPORT_SAVE_OPTIONS = SaveOptions(skip_history=True, skip_notifications=True, import_mode=True)
REVERT_DELETE_OPTIONS = SaveOptions(skip_history=True, skip_notifications=True, silent=True, import_mode=True)


@dataclass
class EntityRecord:
    """In-memory view of a record being built or updated by the importer."""

    entity_type: str
    id: str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    is_new: bool = True
    assigned_user_id: int | None = None

    def has(self, attribute: str) -> bool:
        if attribute == "id":
            return self.id is not None
        return attribute in self.values

    def get(self, attribute: str, default: Any = None) -> Any:
        if attribute == "id":
            return self.id
        return self.values.get(attribute, default)

    def set(self, attribute: str, value: Any) -> None:
        if attribute == "id":
            self.id = None if value in (None, "") else str(value)
            return
        self.values[attribute] = value

    def update(self, values: Mapping[str, Any]) -> None:
        for attribute, value in values.items():
            self.set(attribute, value)


@runtime_checkable
class RecordStore(Protocol):
    def has_type(self, entity_type: str) -> bool: ...

    def new(self, entity_type: str) -> EntityRecord: ...

    def get(self, entity_type: str, record_id: str) -> EntityRecord | None: ...

    def find(self, entity_type: str, where: Mapping[str, Any], *, limit: int | None = None) -> list[EntityRecord]: ...

    def find_one(self, entity_type: str, where: Mapping[str, Any]) -> EntityRecord | None: ...

    def save(self, record: EntityRecord, options: SaveOptions = ...) -> EntityRecord: ...

    def delete(self, record: EntityRecord, options: SaveOptions = ...) -> None: ...

    def purge(self, entity_type: str, record_id: str) -> bool: ...


@runtime_checkable
class PermissionChecker(Protocol):
    def can_read(self, principal: Any, target: Any) -> bool: ...

    def can_edit(self, principal: Any, target: Any) -> bool: ...

    def can_create(self, principal: Any, target: Any) -> bool: ...

    def can_delete(self, principal: Any, target: Any) -> bool: ...

    def forbidden_edit_attributes(self, principal: Any, entity_type: str) -> Sequence[str]: ...


@runtime_checkable
class BlobStore(Protocol):
    def get_contents(self, attachment_id: Any) -> bytes | None: ...

    def store(self, contents: bytes, *, name: str = ..., mime_type: str = ..., role: str = ...) -> Any: ...


@runtime_checkable
class JobSubmitter(Protocol):
    def enqueue(self, job_name: str, payload: Mapping[str, Any]) -> Any: ...


USER_ENTITY = "User"


@runtime_checkable
class UserDirectory(Protocol):
    """Looks up users, which live outside the record store, by display name."""

    def find_by_name(self, name: str) -> EntityRecord | None: ...
