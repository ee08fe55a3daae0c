"""
Batch loop for bulk user imports.

Rows are processed strictly in order and one at a time. A failing row is
recorded and the loop moves on; only batch-level checks (size) raise.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from . import metrics
from .contracts import ImportRow
from .errors import ValidationError
from .notifications import WelcomeNotifier
from .provisioner import RowProvisioner
from .results import BatchReport, ProvisionFailure, ProvisionSuccess

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


class BatchImporter:
    """Run a ``RowProvisioner`` over a batch and aggregate a ``BatchReport``."""

    def __init__(
        self,
        provisioner: RowProvisioner,
        notifier: WelcomeNotifier | None = None,
        *,
        max_rows: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provisioner = provisioner
        self.notifier = notifier
        self.max_rows = max_rows
        self.clock = clock

    def check_size(self, rows: Sequence[ImportRow]) -> None:
        if not rows:
            raise ValidationError(["users: At least one user required"])
        if len(rows) > self.max_rows:
            raise ValidationError([f"users: Maximum {self.max_rows} users per upload"])

    def _notify(self, result: ProvisionSuccess) -> None:
        if self.notifier is None:
            metrics.record_notification("skipped")
            return
        try:
            outcome = self.notifier.notify(result.identity)
        except Exception:
            logger.exception("Welcome notification for row %s raised", result.row)
            outcome = "failed"
        metrics.record_notification(outcome)

    def _provision(self, row: ImportRow, row_number: int, default_organization_id: int | None):
        try:
            return self.provisioner.provision(row, row_number, default_organization_id)
        except Exception as exc:
            self.provisioner.store.rollback()
            logger.exception("Unexpected error provisioning row %s (%s)", row_number, row.email)
            return ProvisionFailure(row=row_number, email=row.email, reason=f"Unexpected error: {exc}")

    def run(
        self,
        rows: Sequence[ImportRow],
        default_organization_id: int | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> BatchReport:
        """
        Provision ``rows`` in order.

        Args:
            rows: validated rows, at most ``max_rows``
            default_organization_id: used for rows without an organization name
            timeout_seconds: rows not started before this budget elapses are
                skipped and counted in ``BatchReport.unprocessed``

        Raises:
            ValidationError: for an empty or oversized batch
        """

        self.check_size(rows)
        deadline = self.clock() + timeout_seconds if timeout_seconds is not None else None
        report = BatchReport()

        for index, row in enumerate(rows):
            if deadline is not None and self.clock() >= deadline:
                report.timed_out = True
                report.unprocessed = len(rows) - index
                logger.warning(
                    "Bulk import deadline reached; %s of %s rows not processed",
                    report.unprocessed,
                    len(rows),
                )
                break

            row_number = index + FIRST_DATA_ROW
            result = self._provision(row, row_number, default_organization_id)
            report.record(result)

            if isinstance(result, ProvisionSuccess):
                self._notify(result)
            else:
                logger.warning(
                    "Bulk import row %s (%s) failed: %s",
                    result.row,
                    result.email,
                    result.reason,
                    extra={"bulk_import_row": result.row, "bulk_import_email": result.email},
                )

        metrics.record_rows(success=report.success, failed=report.failed)
        logger.info(
            "Bulk import finished: %s succeeded, %s failed",
            report.success,
            report.failed,
            extra={"bulk_import_cache": self.provisioner.resolver.cache.stats()},
        )
        return report
