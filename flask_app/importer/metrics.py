"""Prometheus metrics helpers for the importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_runs_counter = Counter(
    "importer_runs_total",
    "Import run executions by final status.",
    ["entity_type", "status"],
)
_rows_counter = Counter(
    "importer_rows_total",
    "Imported rows by outcome.",
    ["entity_type", "outcome"],
)
_run_duration = Histogram(
    "importer_run_duration_seconds",
    "Wall-clock duration of import run executions in seconds.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, 900),
)
_revert_counter = Counter(
    "importer_revert_records_total",
    "Records removed by revert and duplicate removal.",
    ["operation", "mode"],
)


def record_import_run(*, entity_type: str, status: str, duration_seconds: float) -> None:
    """Capture the final status and duration of one run execution."""

    _runs_counter.labels(entity_type=entity_type, status=status).inc()
    _run_duration.observe(duration_seconds)


def record_row_outcome(
    entity_type: str,
    outcome: Literal["created", "updated", "duplicate", "skipped"],
) -> None:
    _rows_counter.labels(entity_type=entity_type, outcome=outcome).inc()


def record_revert(
    *,
    operation: Literal["revert", "remove_duplicates"],
    mode: Literal["soft", "hard"],
    count: int,
) -> None:
    if count <= 0:
        return
    _revert_counter.labels(operation=operation, mode=mode).inc(count)
