"""
Unwind import runs using their ``ImportEntity`` outcome log.

Reverting deletes every record a run created and then the run itself. Records
of a run younger than the hard-delete window are removed outright; older runs
leave soft-deleted rows behind. Duplicate removal always hard-deletes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from flask_app.models import ImportEntity, ImportRun, db
from flask_app.models.base import as_utc, utc_now
from flask_app.utils.importer import DEFAULT_HARD_DELETE_DAYS

from ..contracts import REVERT_DELETE_OPTIONS, PermissionChecker, RecordStore
from ..exceptions import NotFound, PermissionDenied
from ..metrics import record_revert

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(slots=True)
class RevertSummary:
    run_id: int
    soft_deleted: int = 0
    hard_deleted: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "run_id": self.run_id,
            "soft_deleted": self.soft_deleted,
            "hard_deleted": self.hard_deleted,
            "skipped": self.skipped,
        }


class RevertEngine:
    def __init__(
        self,
        store: RecordStore,
        permissions: PermissionChecker,
        principal: Any,
        *,
        session: Session | None = None,
        hard_delete_days: float = DEFAULT_HARD_DELETE_DAYS,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.permissions = permissions
        self.principal = principal
        self.session = session or db.session
        self.hard_delete_days = hard_delete_days
        self.now = now

    def _load_run(self, run_id: int, action: str) -> ImportRun:
        run = self.session.get(ImportRun, run_id)
        if run is None:
            raise NotFound(f"Import run {run_id} not found.")
        check = self.permissions.can_delete if action == "delete" else self.permissions.can_edit
        if not check(self.principal, run):
            raise PermissionDenied(f"No {action} access to import run {run_id}.")
        return run

    def _outcomes(self, run: ImportRun, **flags: bool) -> list[ImportEntity]:
        return (
            self.session.query(ImportEntity)
            .filter_by(import_id=run.id, **flags)
            .order_by(ImportEntity.id)
            .all()
        )

    def run_age_days(self, run: ImportRun) -> float | None:
        created_at = as_utc(run.created_at)
        if created_at is None:
            return None
        return (self.now() - created_at).total_seconds() / SECONDS_PER_DAY

    def _remove(self, outcome: ImportEntity, *, hard: bool, summary: RevertSummary) -> None:
        entity_type, entity_id = outcome.entity_type, outcome.entity_id
        if not entity_type or not entity_id or not self.store.has_type(entity_type):
            summary.skipped += 1
            return
        record = self.store.get(entity_type, entity_id)
        if record is None:
            summary.skipped += 1
            return
        self.store.delete(record, REVERT_DELETE_OPTIONS)
        if hard:
            self.store.purge(entity_type, entity_id)
            summary.hard_deleted += 1
        else:
            summary.soft_deleted += 1

    def revert(self, run_id: int) -> RevertSummary:
        """Delete every record the run created, then the run itself."""

        run = self._load_run(run_id, "delete")
        age = self.run_age_days(run)
        hard = age is not None and age < self.hard_delete_days

        summary = RevertSummary(run_id=run.id)
        for outcome in self._outcomes(run, is_imported=True):
            self._remove(outcome, hard=hard, summary=summary)

        self.session.delete(run)
        self.session.commit()

        record_revert(operation="revert", mode="hard", count=summary.hard_deleted)
        record_revert(operation="revert", mode="soft", count=summary.soft_deleted)
        logger.info(
            "Import run reverted",
            extra={
                "importer_run_id": run_id,
                "importer_revert_hard": hard,
                "importer_revert_soft_deleted": summary.soft_deleted,
                "importer_revert_hard_deleted": summary.hard_deleted,
                "importer_revert_skipped": summary.skipped,
            },
        )
        return summary

    def remove_duplicates(self, run_id: int) -> RevertSummary:
        """Hard-delete every record flagged as a suspected duplicate."""

        run = self._load_run(run_id, "delete")
        summary = RevertSummary(run_id=run.id)
        for outcome in self._outcomes(run, is_duplicate=True):
            self._remove(outcome, hard=True, summary=summary)
        self.session.commit()

        record_revert(operation="remove_duplicates", mode="hard", count=summary.hard_deleted)
        logger.info(
            "Import duplicates removed",
            extra={"importer_run_id": run_id, "importer_duplicates_removed": summary.hard_deleted},
        )
        return summary

    def unmark_as_duplicate(self, run_id: int, entity_type: str, entity_id: str) -> None:
        run = self._load_run(run_id, "edit")
        outcomes = (
            self.session.query(ImportEntity)
            .filter_by(import_id=run.id, entity_type=entity_type, entity_id=str(entity_id))
            .all()
        )
        if not outcomes:
            raise NotFound(f"No {entity_type} '{entity_id}' recorded for import run {run_id}.")
        for outcome in outcomes:
            outcome.is_duplicate = False
        self.session.commit()
