"""
Import run orchestration.

``ImportService`` is the entry point used by the blueprint, the CLI and the
Celery worker. It validates a request, persists the ``ImportRun``, and then
either defers it (idle mode), parks it (manual mode) or executes it inline.
Execution walks the attachment row by row: every row that yields an outcome
commits its record, the run checkpoint and the ``ImportEntity`` together, so
an interrupted run resumes right after the last durable outcome.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from flask import has_app_context
from sqlalchemy.orm import Session

from flask_app.models import ImportEntity, ImportRun, ImportRunStatus, db
from flask_app.models.base import utc_now
from flask_app.models.importer.schema import RESUMABLE_STATUSES
from flask_app.utils.importer import DEFAULT_CURRENCY, DEFAULT_HARD_DELETE_DAYS, get_default_currency, get_hard_delete_days
from flask_app.utils.permissions import AclPermissionChecker

from ..contracts import BlobStore, EntityDescriptor, JobSubmitter, PermissionChecker, RecordStore
from ..exceptions import InvalidRequest, NotFound, PermissionDenied
from ..metrics import record_import_run, record_row_outcome
from ..registry import EntityRegistry, get_entity_registry
from ..stores import SqlBlobStore, SqlRecordStore
from .duplicates import DuplicateResolver, RowOutcome
from .params import ImportParams, mapped_attribute_count
from .revert import RevertEngine, RevertSummary
from .row_mapper import RowMapper
from .tokenizer import iter_rows, normalize_delimiter, normalize_line_endings

logger = logging.getLogger(__name__)

IDLE_IMPORT_JOB = "importer.run_idle_import"
MAX_COLLECTED_ERRORS = 50


class RunLogAdapter(logging.LoggerAdapter):
    """
    Logger bound to one run: tags records with ``importer_run_id`` and keeps
    error-level messages so they can be stored as the run's error summary.
    """

    def __init__(self, base: logging.Logger, run_id: int | None) -> None:
        super().__init__(base, {"importer_run_id": run_id})
        self.errors: list[str] = []

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def log(self, level, msg, *args, **kwargs):
        if level >= logging.ERROR and len(self.errors) < MAX_COLLECTED_ERRORS:
            try:
                self.errors.append(str(msg) % args if args else str(msg))
            except (TypeError, ValueError):
                self.errors.append(str(msg))
        super().log(level, msg, *args, **kwargs)

    def summary(self) -> str | None:
        return "\n".join(self.errors) or None


@dataclass
class ImportResult:
    """Counts returned to the caller, including for partially failed runs."""

    id: int
    count_created: int = 0
    count_updated: int = 0
    count_duplicate: int = 0
    manual_mode: bool = False
    status: ImportRunStatus | None = None
    rows_skipped_no_key: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "countCreated": self.count_created,
            "countUpdated": self.count_updated,
            "countDuplicate": self.count_duplicate,
            "manualMode": self.manual_mode,
            "status": self.status.value if self.status else None,
            "rowsSkippedNoKey": self.rows_skipped_no_key,
        }


def is_blank_row(row: Sequence[str]) -> bool:
    return all(cell == "" for cell in row)


def _is_admin(principal: Any) -> bool:
    return bool(getattr(principal, "is_super_admin", False))


class ImportService:
    """Runs, resumes and unwinds CSV imports on behalf of one principal."""

    def __init__(
        self,
        principal: Any = None,
        *,
        store: RecordStore | None = None,
        blobs: BlobStore | None = None,
        permissions: PermissionChecker | None = None,
        registry: EntityRegistry | None = None,
        jobs: JobSubmitter | None = None,
        session: Session | None = None,
    ) -> None:
        self.principal = principal
        self.session = session or db.session
        self.registry = registry or get_entity_registry()
        self.store = store or SqlRecordStore(self.session, self.registry)
        self.blobs = blobs or SqlBlobStore(self.session)
        self.permissions = permissions or AclPermissionChecker()
        self._jobs = jobs
        self.default_currency = get_default_currency() if has_app_context() else DEFAULT_CURRENCY

    @property
    def jobs(self) -> JobSubmitter:
        if self._jobs is None:
            from ..tasks import CeleryJobSubmitter

            self._jobs = CeleryJobSubmitter()
        return self._jobs

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(
        self,
        entity_type: str,
        attribute_list: Sequence[str | None],
        attachment_id: Any,
        params: Mapping[str, Any] | None = None,
        import_id: int | None = None,
        user: Any = None,
    ) -> ImportResult:
        """
        Start a new run, or continue ``import_id`` with the given mapping.

        Manual mode only persists the run (Standby); idle mode persists it
        (Pending) and enqueues a worker job. Otherwise rows are processed
        inline and the counts of this invocation are returned.
        """

        user = user if user is not None else self.principal
        if user is None:
            raise PermissionDenied("An acting user is required to import.")

        descriptor = self.registry.get(entity_type)
        if descriptor is None:
            raise InvalidRequest(f"Unknown entity type '{entity_type}'.")

        try:
            import_params = ImportParams.coerce(params)
        except ValueError as exc:
            raise InvalidRequest(str(exc)) from exc

        attribute_list = [attribute or None for attribute in attribute_list]
        if not _is_admin(user):
            forbidden = set(self.permissions.forbidden_edit_attributes(user, entity_type))
            attribute_list = [None if attribute in forbidden else attribute for attribute in attribute_list]
            if not self.permissions.can_create(user, entity_type):
                raise PermissionDenied(f"Creating {entity_type} records is forbidden.")

        contents = self.blobs.get_contents(attachment_id)
        if contents is None:
            raise NotFound(f"Attachment '{attachment_id}' not found.")
        if not contents:
            raise InvalidRequest("The import file is empty.")

        start_from: int | None = None
        if import_id is not None:
            run = self.session.get(ImportRun, import_id)
            if run is None:
                raise NotFound(f"Import run {import_id} not found.")
            if import_params.start_from_last_index:
                start_from = run.last_index
            run.status = ImportRunStatus.IN_PROCESS
        else:
            status = ImportRunStatus.IN_PROCESS
            if import_params.manual_mode:
                import_params = import_params.with_options(idle_mode=False)
                status = ImportRunStatus.STANDBY
            elif import_params.idle_mode:
                status = ImportRunStatus.PENDING
            run = ImportRun(
                entity_type=entity_type,
                status=status,
                attribute_list=list(attribute_list),
                params_json=import_params.to_dict(),
                attachment_id=attachment_id,
                created_by_user_id=getattr(user, "id", None),
            )
            self.session.add(run)
        self.session.commit()

        if import_id is None and import_params.manual_mode:
            logger.info(
                "Import run parked for manual start",
                extra={"importer_run_id": run.id, "importer_entity_type": entity_type},
            )
            return ImportResult(id=run.id, manual_mode=True, status=run.status)

        if import_params.idle_mode:
            payload = {
                "entityType": entity_type,
                "params": import_params.with_options(idle_mode=False).to_dict(),
                "attachmentId": attachment_id,
                "importAttributeList": list(attribute_list),
                "importId": run.id,
                "userId": getattr(self.principal if self.principal is not None else user, "id", None),
            }
            self.jobs.enqueue(IDLE_IMPORT_JOB, payload)
            logger.info(
                "Import run deferred to worker",
                extra={"importer_run_id": run.id, "importer_entity_type": entity_type},
            )
            return ImportResult(id=run.id, status=run.status)

        return self._execute(run, descriptor, attribute_list, import_params, contents, user, start_from)

    def import_by_id(self, run_id: int, start_from_last_index: bool = False, force: bool = False) -> ImportResult:
        """Run a parked (Standby) run, or force-resume an InProcess/Failed one."""

        run = self.session.get(ImportRun, run_id)
        if run is None:
            raise NotFound(f"Import run {run_id} not found.")
        if self.principal is not None and not self.permissions.can_edit(self.principal, run):
            raise PermissionDenied(f"No edit access to import run {run_id}.")

        if run.status is not ImportRunStatus.STANDBY:
            if run.status in RESUMABLE_STATUSES:
                if not force:
                    raise InvalidRequest(
                        f"Import run {run_id} has status '{run.status.value}'; force is required to resume it."
                    )
            else:
                raise InvalidRequest(f"Import run {run_id} cannot run with status '{run.status.value}'.")

        params = dict(run.params_json or {})
        params.pop("idleMode", None)
        params["startFromLastIndex"] = start_from_last_index
        return self.run(
            run.entity_type,
            run.attribute_list or [],
            run.attachment_id,
            params,
            import_id=run.id,
        )

    def resume(self, run_id: int, from_checkpoint: bool = True, force: bool = False) -> ImportResult:
        return self.import_by_id(run_id, start_from_last_index=from_checkpoint, force=force)

    def upload_file(self, contents: bytes | str) -> int:
        """Store CSV contents as an import attachment and return its id."""

        attachment_id = self.blobs.store(
            contents,
            name="import-file.csv",
            mime_type="text/csv",
            role="Import File",
        )
        self.session.commit()
        return attachment_id

    def import_file_with_params_id(self, contents: bytes | str, source_run_id: int) -> ImportResult:
        """Import new file contents using a previous run's type, mapping and params."""

        if not contents:
            raise InvalidRequest("File contents are empty.")

        source = self.session.get(ImportRun, source_run_id)
        if source is None:
            raise NotFound(f"Import run {source_run_id} not found.")

        params = dict(source.params_json or {})
        params.pop("idleMode", None)
        params.pop("manualMode", None)
        params.pop("startFromLastIndex", None)

        attachment_id = self.upload_file(contents)
        return self.run(source.entity_type, source.attribute_list or [], attachment_id, params)

    def revert(self, run_id: int) -> RevertSummary:
        return self._revert_engine().revert(run_id)

    def remove_duplicates(self, run_id: int) -> RevertSummary:
        return self._revert_engine().remove_duplicates(run_id)

    def unmark_as_duplicate(self, run_id: int, entity_type: str, entity_id: str) -> None:
        self._revert_engine().unmark_as_duplicate(run_id, entity_type, entity_id)

    clear_duplicate_flag = unmark_as_duplicate

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _revert_engine(self) -> RevertEngine:
        return RevertEngine(
            self.store,
            self.permissions,
            self.principal,
            session=self.session,
            hard_delete_days=get_hard_delete_days() if has_app_context() else DEFAULT_HARD_DELETE_DAYS,
        )

    def _execute(
        self,
        run: ImportRun,
        descriptor: EntityDescriptor,
        attribute_list: list[str | None],
        params: ImportParams,
        contents: bytes,
        user: Any,
        start_from: int | None,
    ) -> ImportResult:
        run_id = run.id
        log = RunLogAdapter(logger, run_id)
        result = ImportResult(id=run_id)

        run.started_at = utc_now()
        run.finished_at = None
        self.session.commit()
        started = time.monotonic()

        mapper = RowMapper(
            descriptor,
            attribute_list,
            params,
            self.store,
            default_currency=self.default_currency,
            log=log,
        )
        resolver = DuplicateResolver(descriptor, attribute_list, params, self.store, self.permissions, user, log=log)

        mapped = mapped_attribute_count(attribute_list)
        text = normalize_line_endings(contents.decode("utf-8-sig", errors="replace"))
        separator = normalize_delimiter(params.delimiter)

        log.info(
            "Import run started",
            extra={
                "importer_entity_type": descriptor.name,
                "importer_action": params.action.value,
                "importer_start_from": start_from,
            },
        )

        status = ImportRunStatus.COMPLETE
        index = -1
        try:
            if not mapped:
                log.warning("No columns are mapped; nothing to import")
            rows = iter_rows(text, separator=separator, enclosure=params.text_qualifier) if mapped else ()
            for index, row in enumerate(rows):
                if index == 0 and params.header_row:
                    continue
                if mapped > 1 and is_blank_row(row):
                    continue
                if start_from is not None and index <= start_from:
                    continue

                candidate = mapper.map_row(row)
                outcome = resolver.resolve(candidate, row)
                if outcome is None:
                    record_row_outcome(descriptor.name, "skipped")
                    continue

                self._record_outcome(run_id, index, outcome)
                self._count(result, outcome)
        except Exception as exc:
            self.session.rollback()
            status = ImportRunStatus.FAILED
            log.exception("Import run aborted at row %s: %s", index, exc)

        run = self.session.get(ImportRun, run_id)
        run.status = status
        run.finished_at = utc_now()
        run.error_summary = log.summary()
        self.session.commit()

        result.status = status
        result.rows_skipped_no_key = resolver.rows_skipped_no_key
        duration = time.monotonic() - started
        record_import_run(entity_type=descriptor.name, status=status.value, duration_seconds=duration)
        log.info(
            "Import run finished",
            extra={
                "importer_status": status.value,
                "importer_rows_created": result.count_created,
                "importer_rows_updated": result.count_updated,
                "importer_rows_duplicate": result.count_duplicate,
                "importer_rows_skipped_no_key": result.rows_skipped_no_key,
                "importer_duration_seconds": duration,
            },
        )
        return result

    def _record_outcome(self, run_id: int, index: int, outcome: RowOutcome) -> None:
        run = self.session.get(ImportRun, run_id)
        # checkpoint and outcome share one commit; the checkpoint never moves back
        if run.last_index is None or index > run.last_index:
            run.last_index = index
        self.session.add(
            ImportEntity(
                import_id=run_id,
                entity_type=outcome.entity_type,
                entity_id=outcome.entity_id,
                is_imported=outcome.created,
                is_updated=outcome.updated,
                is_duplicate=outcome.duplicate,
            )
        )
        self.session.commit()

    @staticmethod
    def _count(result: ImportResult, outcome: RowOutcome) -> None:
        if outcome.created:
            result.count_created += 1
            record_row_outcome(outcome.entity_type, "created")
        if outcome.updated:
            result.count_updated += 1
            record_row_outcome(outcome.entity_type, "updated")
        if outcome.duplicate:
            result.count_duplicate += 1
            record_row_outcome(outcome.entity_type, "duplicate")
