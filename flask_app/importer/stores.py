"""
SQLAlchemy-backed collaborators for the import engine.

``SqlRecordStore`` persists every entity type in the generic ``records``
table and ``SqlBlobStore`` keeps uploaded files in ``import_attachments``.
Both flush but never commit; the caller owns the unit of work.
``SqlUserDirectory`` is read-only and resolves user relations.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flask_app.models import ImportAttachment, Record, User, db
from flask_app.models.base import utc_now

from .contracts import USER_ENTITY, EntityRecord, SaveOptions
from .exceptions import TransientRowFailure
from .registry import EntityRegistry, get_entity_registry

logger = logging.getLogger(__name__)


def _lookup_text(value: Any) -> str:
    """Text form a lookup value is compared in: trimmed and lower-cased."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def match_clause(attribute: str, expected: Any):
    """
    SQL predicate for one lookup pair. Text compares case-insensitively,
    ``None`` matches only a missing or null value and ``""`` never matches
    a missing one.
    """
    column = Record.id if attribute == "id" else Record.data[attribute].as_string()
    if expected is None:
        return column.is_(None)
    return func.lower(func.trim(column)) == _lookup_text(expected)


def _to_entity_record(row: Record) -> EntityRecord:
    return EntityRecord(
        entity_type=row.entity_type,
        id=row.id,
        values=dict(row.data or {}),
        is_new=False,
        assigned_user_id=row.assigned_user_id,
    )


class SqlRecordStore:
    """Record store persisting all entity types in the ``records`` table."""

    def __init__(self, session: Session | None = None, registry: EntityRegistry | None = None) -> None:
        self.session = session or db.session
        self.registry = registry or get_entity_registry()

    def _flush(self, message: str) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise TransientRowFailure(f"{message}: {exc}") from exc

    def has_type(self, entity_type: str) -> bool:
        return self.registry.has(entity_type)

    def new(self, entity_type: str) -> EntityRecord:
        return EntityRecord(entity_type=entity_type)

    def _query(self, entity_type: str, *, include_deleted: bool = False):
        query = self.session.query(Record).filter(Record.entity_type == entity_type)
        if not include_deleted:
            query = query.filter(Record.deleted.is_(False))
        return query

    def _row(self, entity_type: str, record_id: str, *, include_deleted: bool = False) -> Record | None:
        return self._query(entity_type, include_deleted=include_deleted).filter(Record.id == str(record_id)).one_or_none()

    def get(self, entity_type: str, record_id: str) -> EntityRecord | None:
        if not record_id:
            return None
        row = self._row(entity_type, record_id)
        return _to_entity_record(row) if row is not None else None

    def find(self, entity_type: str, where: Mapping[str, Any], *, limit: int | None = None) -> list[EntityRecord]:
        query = self._query(entity_type).filter(
            *(match_clause(attribute, expected) for attribute, expected in where.items())
        )
        query = query.order_by(Record.pk)
        if limit is not None:
            query = query.limit(limit)
        return [_to_entity_record(row) for row in query]

    def find_one(self, entity_type: str, where: Mapping[str, Any]) -> EntityRecord | None:
        matches = self.find(entity_type, where, limit=1)
        return matches[0] if matches else None

    def count(self, entity_type: str) -> int:
        return self._query(entity_type).count()

    def save(self, record: EntityRecord, options: SaveOptions = SaveOptions()) -> EntityRecord:
        if record.is_new:
            row = Record(entity_type=record.entity_type, data=dict(record.values))
            if record.id:
                row.id = record.id
            row.assigned_user_id = record.assigned_user_id
            self.session.add(row)
        else:
            row = self._row(record.entity_type, record.id)
            if row is None:
                raise TransientRowFailure(f"{record.entity_type} '{record.id}' no longer exists.")
            previous_updated_at = row.updated_at
            # reassign so the JSON column registers the change
            row.data = {**(row.data or {}), **record.values}
            if record.assigned_user_id is not None:
                row.assigned_user_id = record.assigned_user_id
            if options.silent:
                row.updated_at = previous_updated_at
        self._flush(f"Could not save {record.entity_type} record")

        record.id = row.id
        record.is_new = False
        logger.debug(
            "Record saved",
            extra={
                "record_entity_type": record.entity_type,
                "record_id": record.id,
                "record_skip_history": options.skip_history,
                "record_skip_notifications": options.skip_notifications,
            },
        )
        return record

    def delete(self, record: EntityRecord, options: SaveOptions = SaveOptions()) -> None:
        """Soft-delete: the row stays in place flagged as deleted."""
        row = self._row(record.entity_type, record.id)
        if row is None:
            return
        row.deleted = True
        row.deleted_at = utc_now()
        self.session.flush()
        logger.debug(
            "Record soft-deleted",
            extra={"record_entity_type": record.entity_type, "record_id": record.id, "record_silent": options.silent},
        )

    def purge(self, entity_type: str, record_id: str) -> bool:
        """Hard-delete a record, including an already soft-deleted one."""
        row = self._row(entity_type, record_id, include_deleted=True)
        if row is None:
            return False
        self.session.delete(row)
        self._flush(f"Could not purge {entity_type} '{record_id}'")
        return True


class SqlBlobStore:
    """Blob store backed by the ``import_attachments`` table."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session

    def get(self, attachment_id: Any) -> ImportAttachment | None:
        try:
            return self.session.get(ImportAttachment, int(attachment_id))
        except (TypeError, ValueError):
            return None

    def get_contents(self, attachment_id: Any) -> bytes | None:
        attachment = self.get(attachment_id)
        if attachment is None:
            return None
        return attachment.contents or b""

    def store(
        self,
        contents: bytes | str,
        *,
        name: str = "import-file.csv",
        mime_type: str = "text/csv",
        role: str = "Import File",
    ) -> int:
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        attachment = ImportAttachment(
            name=name,
            mime_type=mime_type,
            role=role,
            size=len(contents),
            contents=contents,
        )
        self.session.add(attachment)
        self.session.flush()
        return attachment.id


class SqlUserDirectory:
    """Resolves user relations among active users, by user name or full name."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session

    def find_by_name(self, name: str) -> EntityRecord | None:
        text = _lookup_text(name) if name is not None else ""
        if not text:
            return None
        full_name = func.coalesce(User.first_name, "") + " " + func.coalesce(User.last_name, "")
        user = (
            self.session.query(User)
            .filter(
                User.is_active.is_(True),
                or_(func.lower(User.username) == text, func.lower(func.trim(full_name)) == text),
            )
            .order_by(User.id)
            .first()
        )
        if user is None:
            return None
        display = " ".join(part for part in (user.first_name, user.last_name) if part)
        return EntityRecord(
            entity_type=USER_ENTITY,
            id=str(user.id),
            values={"name": display or user.username},
            is_new=False,
        )
