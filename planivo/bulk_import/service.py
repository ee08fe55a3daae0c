"""
Entry points wiring the importer to the running application.

``run_bulk_import`` applies the batch gates in order (authentication,
administrative role, rate limit, payload validation) before any row is
touched, then runs the batch and writes the audit entry. ``import_rows`` is
the ungated path used by the CLI.
"""

from __future__ import annotations

import json
import time
from typing import Any, Collection, Mapping, Sequence

from flask import current_app

from planivo.models import AdminLog
from planivo.utils.permissions import get_user_organizations
from planivo.utils.rate_limit import check_rate_limit

from . import metrics
from .contracts import ImportRow
from .errors import AuthenticationError, AuthorizationError, RateLimitError, ValidationError
from .importer import BatchImporter
from .notifications import SMTPMailer, WelcomeNotifier
from .provisioner import RowProvisioner
from .resolver import NameResolver, ResolutionCache
from .results import BatchReport
from .store import DirectoryStore, SQLAlchemyDirectoryStore
from .validation import validate_bulk_payload

RATE_LIMIT_ACTION = "bulk_user_upload"
AUDIT_ACTION = "BULK_IMPORT_USERS"

_UNSET = object()


def build_importer(
    config: Mapping[str, Any],
    *,
    created_by_id: int | None,
    store: DirectoryStore | None = None,
    mailer: Any = _UNSET,
    send_welcome_email: bool | None = None,
    allowed_organization_ids: Collection[int] | None = None,
) -> BatchImporter:
    """Assemble a fresh importer; each call gets its own resolution cache."""

    store = store or SQLAlchemyDirectoryStore()
    resolver = NameResolver(store, ResolutionCache())
    provisioner = RowProvisioner(
        store,
        resolver,
        created_by_id=created_by_id,
        password_length=config.get("BULK_IMPORT_PASSWORD_LENGTH", 16),
        allowed_organization_ids=allowed_organization_ids,
    )

    if mailer is _UNSET:
        mailer = SMTPMailer.from_config(config)
    if send_welcome_email is None:
        send_welcome_email = config.get("BULK_IMPORT_SEND_WELCOME_EMAIL", True)
    public_url = (config.get("PUBLIC_APP_URL") or "").rstrip("/")
    notifier = WelcomeNotifier(
        mailer,
        login_url=f"{public_url}/auth",
        app_name=config.get("APP_NAME", "Planivo"),
        enabled=bool(send_welcome_email),
    )
    return BatchImporter(provisioner, notifier, max_rows=config.get("BULK_IMPORT_MAX_ROWS", 100))


def authorize_caller(caller) -> None:
    """Raise unless ``caller`` is an authenticated user holding an admin role."""

    if caller is None or not getattr(caller, "is_authenticated", False):
        metrics.record_batch("rejected_auth")
        raise AuthenticationError("Unauthorized")
    if not caller.is_admin:
        metrics.record_batch("rejected_forbidden")
        current_app.logger.warning(f"Bulk import denied for user {caller.id}: admin role required")
        raise AuthorizationError("Insufficient permissions. Admin role required.")


def organization_scope(caller) -> frozenset[int] | None:
    """Organizations ``caller`` may provision into; None for super admins (no restriction)."""

    if caller.is_super_admin:
        return None
    return frozenset(org.id for org in get_user_organizations(caller))


def _enforce_rate_limit(caller) -> None:
    config = current_app.config
    allowed, retry_after = check_rate_limit(
        caller.id,
        RATE_LIMIT_ACTION,
        config.get("BULK_IMPORT_RATE_LIMIT_MAX", 5),
        config.get("BULK_IMPORT_RATE_LIMIT_WINDOW_SECONDS", 300),
    )
    if not allowed:
        metrics.record_batch("rejected_rate_limit")
        raise RateLimitError("Rate limit exceeded. Please try again later.", retry_after=retry_after)


def _audit(caller_id, report: BatchReport, organization_id, *, source, ip_address, user_agent) -> None:
    details = {
        "source": source,
        "success": report.success,
        "failed": report.failed,
        "timed_out": report.timed_out,
        "unprocessed": report.unprocessed,
    }
    AdminLog.log_action(
        caller_id,
        AUDIT_ACTION,
        details=json.dumps(details),
        ip_address=ip_address,
        user_agent=user_agent,
        organization_id=organization_id,
    )


def import_rows(
    rows: Sequence[ImportRow],
    default_organization_id: int | None,
    *,
    caller_id: int | None,
    store: DirectoryStore | None = None,
    mailer: Any = _UNSET,
    send_welcome_email: bool | None = None,
    timeout_seconds: float | None = None,
    allowed_organization_ids: Collection[int] | None = None,
    source: str = "api",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> BatchReport:
    """Run a batch of validated rows and record the audit entry."""

    config = current_app.config
    importer = build_importer(
        config,
        created_by_id=caller_id,
        store=store,
        mailer=mailer,
        send_welcome_email=send_welcome_email,
        allowed_organization_ids=allowed_organization_ids,
    )
    if timeout_seconds is None:
        timeout_seconds = config.get("BULK_IMPORT_TIMEOUT_SECONDS") or None

    started = time.perf_counter()
    report = importer.run(rows, default_organization_id, timeout_seconds=timeout_seconds)
    duration = time.perf_counter() - started

    metrics.record_batch("accepted")
    metrics.record_batch_duration(duration)
    current_app.logger.info(
        f"Bulk import by user {caller_id} via {source}: {report.success} succeeded, "
        f"{report.failed} failed in {duration:.2f}s"
    )
    _audit(
        caller_id,
        report,
        default_organization_id,
        source=source,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return report


def admit_caller(caller) -> None:
    """Authentication, role and rate limit gates, in that order."""

    authorize_caller(caller)
    _enforce_rate_limit(caller)


def reject_invalid(details: Sequence[str]) -> ValidationError:
    metrics.record_batch("rejected_validation")
    return ValidationError(details)


def process_payload(
    caller,
    payload: Any,
    *,
    organization_context_id: int | None = None,
    store: DirectoryStore | None = None,
    mailer: Any = _UNSET,
    source: str = "api",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> BatchReport:
    """Validate an already admitted caller's payload and run the batch."""

    try:
        rows, organization_id = validate_bulk_payload(
            payload, max_rows=current_app.config.get("BULK_IMPORT_MAX_ROWS", 100)
        )
    except ValidationError:
        metrics.record_batch("rejected_validation")
        raise

    allowed = organization_scope(caller)
    if organization_id is None:
        organization_id = organization_context_id
    elif allowed is not None and organization_id not in allowed:
        metrics.record_batch("rejected_forbidden")
        current_app.logger.warning(
            f"Bulk import denied for user {caller.id}: no access to organization {organization_id}"
        )
        raise AuthorizationError("Insufficient permissions for the requested organization.")

    return import_rows(
        rows,
        organization_id,
        caller_id=caller.id,
        allowed_organization_ids=allowed,
        store=store,
        mailer=mailer,
        source=source,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def run_bulk_import(caller, payload: Any, **kwargs) -> BatchReport:
    """
    Gate and run one bulk import call.

    Raises:
        AuthenticationError, AuthorizationError, RateLimitError,
        ValidationError: before any row is processed.
    """

    admit_caller(caller)
    return process_payload(caller, payload, **kwargs)
