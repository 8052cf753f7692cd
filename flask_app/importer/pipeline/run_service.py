"""
Service helpers for importer run querying, filtering, and serialization.

The JSON endpoints and the CLI consume these helpers to provide paginated
listings, detail payloads with outcome counts, and the records linked to a
run, while keeping SQLAlchemy logic centralized and easily testable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from flask_app.models import ImportEntity, ImportRun, ImportRunStatus, User, db
from flask_app.models.base import as_utc

from ..contracts import PermissionChecker, RecordStore
from ..exceptions import InvalidRequest, NotFound, PermissionDenied

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
DEFAULT_SORT = "-created_at"

VALID_SORT_FIELDS = {
    "id": ImportRun.id,
    "entity_type": ImportRun.entity_type,
    "status": ImportRun.status,
    "started_at": ImportRun.started_at,
    "finished_at": ImportRun.finished_at,
    "created_at": ImportRun.created_at,
}

# link name -> ImportEntity flag selecting the linked records
LINK_FLAGS = {
    "imported": "is_imported",
    "duplicates": "is_duplicate",
    "updated": "is_updated",
}


@dataclass(frozen=True)
class RunFilters:
    """Canonical set of filter options applied to importer runs queries."""

    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    sort: str = DEFAULT_SORT
    statuses: tuple[ImportRunStatus, ...] = field(default_factory=tuple)
    entity_types: tuple[str, ...] = field(default_factory=tuple)
    created_by_user_id: int | None = None

    @classmethod
    def coerce(
        cls,
        *,
        page: int | str | None = None,
        page_size: int | str | None = None,
        sort: str | None = None,
        statuses: Iterable[str] | None = None,
        entity_types: Iterable[str] | None = None,
        created_by_user_id: int | None = None,
    ) -> "RunFilters":
        """
        Coerce mixed user input into a validated ``RunFilters`` instance.
        """

        resolved_page = _coerce_positive_int(page, fallback=DEFAULT_PAGE)
        resolved_size = min(_coerce_positive_int(page_size, fallback=DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)

        resolved_sort = sort or DEFAULT_SORT
        sort_key = resolved_sort.lstrip("-")
        if sort_key not in VALID_SORT_FIELDS:
            raise ValueError(f"Unsupported sort field '{sort_key}'.")

        resolved_statuses: list[ImportRunStatus] = []
        for value in statuses or ():
            if value is None or value == "":
                continue
            resolved_statuses.append(_coerce_status(value))

        resolved_types = tuple(sorted({value.strip() for value in (entity_types or ()) if value and value.strip()}))

        return cls(
            page=resolved_page,
            page_size=resolved_size,
            sort=resolved_sort,
            statuses=tuple(resolved_statuses),
            entity_types=resolved_types,
            created_by_user_id=created_by_user_id,
        )


@dataclass(slots=True)
class RunCounts:
    imported: int = 0
    duplicates: int = 0
    updated: int = 0


@dataclass(slots=True)
class RunListResult:
    """Paginated result set for importer runs."""

    items: list[dict[str, Any]]
    total: int
    page: int
    page_size: int
    total_pages: int


@dataclass(slots=True)
class LinkedRecords:
    """One page of records linked to a run through its outcome log."""

    records: list[dict[str, Any]]
    total: int
    page: int
    page_size: int


class ImportRunService:
    """Facade for querying importer runs with consistent filtering semantics."""

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session

    def list_runs(self, filters: RunFilters) -> RunListResult:
        query = self.session.query(ImportRun)
        if filters.statuses:
            query = query.filter(ImportRun.status.in_(filters.statuses))
        if filters.entity_types:
            query = query.filter(ImportRun.entity_type.in_(filters.entity_types))
        if filters.created_by_user_id is not None:
            query = query.filter(ImportRun.created_by_user_id == filters.created_by_user_id)

        total = query.count()
        if total == 0:
            return RunListResult(items=[], total=0, page=filters.page, page_size=filters.page_size, total_pages=0)

        runs = (
            query.order_by(_resolve_sort_expression(filters.sort), ImportRun.id.desc())
            .offset((filters.page - 1) * filters.page_size)
            .limit(filters.page_size)
            .all()
        )
        total_pages = (total + filters.page_size - 1) // filters.page_size
        return RunListResult(
            items=[self.serialize_run(run) for run in runs],
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            total_pages=total_pages,
        )

    def get_run(self, run_id: int) -> ImportRun:
        run = self.session.get(ImportRun, run_id)
        if run is None:
            raise NotFound(f"Import run {run_id} not found.")
        return run

    def get_counts(self, run: ImportRun) -> RunCounts:
        base = self.session.query(func.count(ImportEntity.id)).filter(ImportEntity.import_id == run.id)
        return RunCounts(
            imported=base.filter(ImportEntity.is_imported.is_(True)).scalar() or 0,
            duplicates=base.filter(ImportEntity.is_duplicate.is_(True)).scalar() or 0,
            updated=base.filter(ImportEntity.is_updated.is_(True)).scalar() or 0,
        )

    def serialize_run(self, run: ImportRun) -> dict[str, Any]:
        counts = self.get_counts(run)

        duration_seconds: float | None = None
        started_at = as_utc(run.started_at)
        if started_at:
            finished = as_utc(run.finished_at) or datetime.now(timezone.utc)
            duration_seconds = (finished - started_at).total_seconds()

        created_by = None
        if run.created_by_user_id:
            user: User | None = self.session.get(User, run.created_by_user_id)
            if user:
                created_by = {
                    "id": user.id,
                    "username": user.username,
                    "display_name": f"{user.first_name or ''} {user.last_name or ''}".strip() or user.username,
                }

        return {
            "id": run.id,
            "entity_type": run.entity_type,
            "status": run.status.value if isinstance(run.status, ImportRunStatus) else str(run.status),
            "attribute_list": list(run.attribute_list or []),
            "params": dict(run.params_json or {}),
            "last_index": run.last_index,
            "attachment_id": run.attachment_id,
            "created_by": created_by,
            "created_at": _isoformat(run.created_at),
            "started_at": _isoformat(run.started_at),
            "finished_at": _isoformat(run.finished_at),
            "duration_seconds": duration_seconds,
            "error_summary": run.error_summary,
            "imported_count": counts.imported,
            "duplicate_count": counts.duplicates,
            "updated_count": counts.updated,
        }

    def find_linked(
        self,
        run_id: int,
        link: str,
        *,
        principal: Any,
        permissions: PermissionChecker,
        store: RecordStore,
        page: int | str | None = None,
        page_size: int | str | None = None,
    ) -> LinkedRecords:
        """Records a run imported, updated or flagged as duplicates."""

        flag = LINK_FLAGS.get(link)
        if flag is None:
            raise InvalidRequest(f"Unknown link '{link}'. Expected one of: " + ", ".join(LINK_FLAGS) + ".")

        run = self.get_run(run_id)
        if not permissions.can_read(principal, run):
            raise PermissionDenied(f"No read access to import run {run_id}.")
        if not permissions.can_read(principal, run.entity_type):
            raise PermissionDenied(f"No read access to {run.entity_type} records.")

        try:
            resolved_page = _coerce_positive_int(page, fallback=DEFAULT_PAGE)
            resolved_size = min(_coerce_positive_int(page_size, fallback=DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
        except ValueError as exc:
            raise InvalidRequest(str(exc)) from exc

        query = self.session.query(ImportEntity).filter(
            ImportEntity.import_id == run.id,
            getattr(ImportEntity, flag).is_(True),
        )
        total = query.count()
        outcomes = (
            query.order_by(ImportEntity.id)
            .offset((resolved_page - 1) * resolved_size)
            .limit(resolved_size)
            .all()
        )

        records: list[dict[str, Any]] = []
        for outcome in outcomes:
            record = store.get(outcome.entity_type, outcome.entity_id) if store.has_type(outcome.entity_type) else None
            if record is None:
                continue
            records.append({"id": record.id, "entity_type": record.entity_type, **record.values})

        return LinkedRecords(records=records, total=total, page=resolved_page, page_size=resolved_size)


def _coerce_positive_int(candidate: int | str | None, *, fallback: int) -> int:
    if candidate in (None, ""):
        return fallback
    if isinstance(candidate, int):
        return max(1, candidate)
    if isinstance(candidate, str) and candidate.isdigit():
        return max(1, int(candidate))
    raise ValueError(f"Expected positive integer for pagination, received '{candidate}'.")


def _coerce_status(value: str | ImportRunStatus) -> ImportRunStatus:
    if isinstance(value, ImportRunStatus):
        return value
    normalized = str(value).strip().lower()
    try:
        return ImportRunStatus(normalized)
    except ValueError:
        raise ValueError(f"Unsupported status filter '{value}'.") from None


def _isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def _resolve_sort_expression(sort: str):
    descending = sort.startswith("-")
    column = VALID_SORT_FIELDS[sort.lstrip("-")]
    return column.desc() if descending else column.asc()
