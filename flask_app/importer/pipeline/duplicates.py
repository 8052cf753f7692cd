"""
Decide whether a mapped row creates, updates or skips a record, then write it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Sequence

from ..contracts import (
    IMPORT_SAVE_OPTIONS,
    EntityDescriptor,
    EntityRecord,
    PermissionChecker,
    RecordStore,
)
from ..exceptions import TransientRowFailure
from .params import ImportAction, ImportParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowOutcome:
    """What happened to one row; exactly one of created / updated is set."""

    entity_type: str
    entity_id: str
    created: bool = False
    updated: bool = False
    duplicate: bool = False


class DuplicateResolver:
    def __init__(
        self,
        descriptor: EntityDescriptor,
        attribute_list: Sequence[str | None],
        params: ImportParams,
        store: RecordStore,
        permissions: PermissionChecker,
        principal: Any,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.attribute_list = list(attribute_list)
        self.params = params
        self.store = store
        self.permissions = permissions
        self.principal = principal
        self.log = log or logger
        self.save_options = replace(IMPORT_SAVE_OPTIONS, silent=params.silent_mode)
        self.rows_skipped_no_key = 0

    def key_filter(self, row: Sequence[str]) -> dict[str, str]:
        """Match filter built from the update-by columns, using raw cell text."""

        where: dict[str, str] = {}
        for index in self.params.update_by:
            if index >= len(self.attribute_list):
                continue
            attribute = self.attribute_list[index]
            if not attribute:
                continue
            where[attribute] = row[index] if index < len(row) else ""
        return where

    def _skip_no_key(self, reason: str) -> None:
        if self.rows_skipped_no_key == 0:
            self.log.warning("Action %s: %s; rows are skipped", self.params.action.value, reason)
        self.rows_skipped_no_key += 1

    def _find_target(self, candidate: EntityRecord, row: Sequence[str]) -> EntityRecord | None:
        if not self.params.matches_existing:
            target = self.store.new(self.descriptor.name)
            target.id = candidate.id
            return target

        where = self.key_filter(row)
        if not where:
            self._skip_no_key("no usable update-by column")
            return None

        # a blank key cell never matches a stored record
        existing = None
        if all(value.strip() for value in where.values()):
            existing = self.store.find_one(self.descriptor.name, where)
        elif self.params.action is ImportAction.UPDATE:
            self._skip_no_key("blank update-by value")
            return None

        if existing is not None:
            if not self.permissions.can_edit(self.principal, existing):
                self.log.debug("No edit access to %s %s; row skipped", existing.entity_type, existing.id)
                return None
            return existing

        if self.params.action is ImportAction.UPDATE:
            return None

        target = self.store.new(self.descriptor.name)
        if where.get("id", "").strip():
            target.set("id", where["id"])
        return target

    def resolve(self, candidate: EntityRecord, row: Sequence[str]) -> RowOutcome | None:
        """
        Persist ``candidate`` according to the action mode.

        Returns ``None`` when the row is skipped or its write fails.
        """

        target = self._find_target(candidate, row)
        if target is None:
            return None

        target.update(candidate.values)
        if candidate.assigned_user_id is not None:
            target.assigned_user_id = candidate.assigned_user_id
        is_new = target.is_new
        if is_new and target.assigned_user_id is None:
            target.assigned_user_id = getattr(self.principal, "id", None)

        is_duplicate = False
        if is_new and not self.params.skip_duplicate_checking and self.descriptor.duplicate_predicate:
            is_duplicate = bool(self.descriptor.duplicate_predicate(self.store, target))

        try:
            if is_new and target.id:
                # an explicit id replaces whatever is stored under it
                self.store.purge(target.entity_type, target.id)
            saved = self.store.save(target, self.save_options)
        except TransientRowFailure as exc:
            self.log.error("Import row write failed: %s", exc)
            return None

        return RowOutcome(
            entity_type=saved.entity_type,
            entity_id=saved.id,
            created=is_new,
            updated=not is_new,
            duplicate=is_new and is_duplicate,
        )
