"""
Exception hierarchy for bulk user provisioning.

Batch-level errors (authentication, authorization, rate limit, validation)
abort a call before any row is touched and map to an HTTP status. Row-level
errors (resolution, provisioning) are caught at the row boundary and turned
into ``ProvisionFailure`` results. Notification errors never reach callers.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Sequence


class BulkImportError(Exception):
    """Base exception for bulk import failures."""

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.message}


class AuthenticationError(BulkImportError):
    """Raised when the caller token is missing or invalid."""

    status_code = HTTPStatus.UNAUTHORIZED


class AuthorizationError(BulkImportError):
    """Raised when an authenticated caller lacks an administrative role."""

    status_code = HTTPStatus.FORBIDDEN


class RateLimitError(BulkImportError):
    """Raised when the caller exceeded the bulk import quota."""

    status_code = HTTPStatus.TOO_MANY_REQUESTS

    def __init__(self, message: str, *, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ValidationError(BulkImportError):
    """Raised when the payload violates the request schema."""

    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, details: Sequence[str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.details = tuple(details)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message}: " + "; ".join(self.details)

    def to_payload(self) -> dict:
        return {"error": self.message, "details": list(self.details)}


class ResolutionError(BulkImportError):
    """Raised when a row references a name that does not resolve."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY


class ProvisioningError(BulkImportError):
    """Raised when a downstream write for a row fails."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY


class NotificationError(BulkImportError):
    """Raised by mail transports; always swallowed by the side channel."""
