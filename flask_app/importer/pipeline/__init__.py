"""CSV import pipeline: tokenizer, coercion, row mapping, run execution and revert."""

from __future__ import annotations

from .coercion import DATE_FORMATS, TIME_FORMATS, ValueCoercer
from .duplicates import DuplicateResolver, RowOutcome
from .multi_value import MultiValueMerger
from .params import ImportAction, ImportParams
from .person_name import PersonName, PersonNameParser, parse_person_name
from .revert import RevertEngine, RevertSummary
from .row_mapper import RowMapper
from .run_service import ImportRunService, RunFilters
from .runner import IDLE_IMPORT_JOB, ImportResult, ImportService
from .tokenizer import iter_rows, normalize_delimiter, read_row, serialize_row

__all__ = [
    "DATE_FORMATS",
    "DuplicateResolver",
    "IDLE_IMPORT_JOB",
    "ImportAction",
    "ImportParams",
    "ImportResult",
    "ImportRunService",
    "ImportService",
    "MultiValueMerger",
    "PersonName",
    "PersonNameParser",
    "RevertEngine",
    "RevertSummary",
    "RowMapper",
    "RowOutcome",
    "RunFilters",
    "TIME_FORMATS",
    "ValueCoercer",
    "iter_rows",
    "normalize_delimiter",
    "parse_person_name",
    "read_row",
    "serialize_row",
]
