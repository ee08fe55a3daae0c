"""Prometheus metrics helpers for the bulk user importer."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

BatchOutcome = Literal[
    "accepted",
    "rejected_auth",
    "rejected_forbidden",
    "rejected_rate_limit",
    "rejected_validation",
]

_batch_counter = Counter(
    "planivo_bulk_import_batches_total",
    "Bulk user import calls by outcome.",
    ["outcome"],
)
_row_counter = Counter(
    "planivo_bulk_import_rows_total",
    "Bulk user import rows by outcome.",
    ["outcome"],
)
_notification_counter = Counter(
    "planivo_bulk_import_notifications_total",
    "Welcome mails by outcome.",
    ["outcome"],
)
_batch_duration = Histogram(
    "planivo_bulk_import_batch_duration_seconds",
    "Duration of accepted bulk import batches in seconds.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120),
)


def record_batch(outcome: BatchOutcome) -> None:
    """Increment the batch counter for ``outcome``."""

    _batch_counter.labels(outcome=outcome).inc()


def record_rows(*, success: int, failed: int) -> None:
    if success:
        _row_counter.labels(outcome="success").inc(success)
    if failed:
        _row_counter.labels(outcome="failure").inc(failed)


def record_notification(outcome: Literal["sent", "failed", "skipped"]) -> None:
    _notification_counter.labels(outcome=outcome).inc()


def record_batch_duration(duration_seconds: float) -> None:
    _batch_duration.observe(duration_seconds)
