"""Result types for bulk user provisioning."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Union


@dataclass(frozen=True)
class ScopeContext:
    """Identifiers a row resolved to; organization is always present."""

    organization_id: int
    workspace_id: int | None = None
    facility_id: int | None = None
    department_id: int | None = None
    specialty_id: int | None = None


@dataclass(frozen=True)
class ProvisionedIdentity:
    """Account, profile and role assignment produced for one row."""

    user_id: int
    email: str
    full_name: str
    scope: ScopeContext
    created: bool
    # Only populated for newly created accounts
    temporary_password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ProvisionSuccess:
    row: int
    identity: ProvisionedIdentity
    ok: Literal[True] = True


@dataclass(frozen=True)
class ProvisionFailure:
    row: int
    email: str
    reason: str
    ok: Literal[False] = False

    def as_dict(self) -> dict:
        return {"row": self.row, "email": self.email, "error": self.reason}


ProvisionResult = Union[ProvisionSuccess, ProvisionFailure]


@dataclass
class BatchReport:
    """Aggregate outcome of one bulk import call."""

    success: int = 0
    failed: int = 0
    errors: List[ProvisionFailure] = field(default_factory=list)
    # Rows skipped because the batch deadline passed before they started
    unprocessed: int = 0
    timed_out: bool = False

    def record(self, result: ProvisionResult) -> None:
        if isinstance(result, ProvisionSuccess):
            self.success += 1
        else:
            self.failed += 1
            self.errors.append(result)

    @property
    def processed(self) -> int:
        return self.success + self.failed

    def as_dict(self) -> dict:
        payload = {
            "success": self.success,
            "failed": self.failed,
            "errors": [failure.as_dict() for failure in self.errors],
        }
        if self.timed_out:
            payload["timed_out"] = True
            payload["unprocessed"] = self.unprocessed
        return payload
