"""
Row provisioner for the bulk user importer.

``RowProvisioner.provision`` turns one validated ``ImportRow`` into either a
``ProvisionSuccess`` or a ``ProvisionFailure``. It never raises for row-level
problems; the batch loop relies on that to keep going.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import date
from typing import Callable, Collection

from sqlalchemy.exc import SQLAlchemyError

from planivo.models.user import normalize_email

from .contracts import ImportRow, requires_department, requires_facility, requires_workspace
from .errors import ProvisioningError, ResolutionError
from .resolver import NameResolver
from .results import ProvisionedIdentity, ProvisionFailure, ProvisionResult, ProvisionSuccess, ScopeContext
from .store import AccountExistsError, DirectoryStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 12
PASSWORD_SYMBOLS = "!@#$%^&*()-_=+[]{}?"
_PASSWORD_CLASSES = (string.ascii_lowercase, string.ascii_uppercase, string.digits, PASSWORD_SYMBOLS)


def generate_password(length: int = 16) -> str:
    """Random password containing at least one lower, upper, digit and symbol."""

    length = max(length, MIN_PASSWORD_LENGTH)
    alphabet = "".join(_PASSWORD_CLASSES)
    chars = [secrets.choice(charset) for charset in _PASSWORD_CLASSES]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


class RowProvisioner:
    """Resolve scope and write identity, role and leave balances for a row."""

    def __init__(
        self,
        store: DirectoryStore,
        resolver: NameResolver,
        *,
        created_by_id: int | None = None,
        password_length: int = 16,
        password_factory: Callable[[int], str] = generate_password,
        today: Callable[[], date] = date.today,
        allowed_organization_ids: Collection[int] | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.created_by_id = created_by_id
        self.password_length = password_length
        self.password_factory = password_factory
        self.today = today
        # None means any organization; otherwise rows outside these are refused
        self.allowed_organization_ids = (
            frozenset(allowed_organization_ids) if allowed_organization_ids is not None else None
        )

    def resolve_scope(self, row: ImportRow, default_organization_id: int | None) -> ScopeContext:
        """
        Resolve the organizational scope ``row.role`` requires.

        Raises:
            ResolutionError: when a required level is missing or cannot be found,
                or the organization is outside ``allowed_organization_ids``.
        """

        if row.organization_name:
            organization_id = self.resolver.resolve_organization(row.organization_name)
        elif default_organization_id is not None:
            organization_id = default_organization_id
        else:
            raise ResolutionError("Organization context missing")

        if self.allowed_organization_ids is not None and organization_id not in self.allowed_organization_ids:
            raise ResolutionError(
                f'Not permitted to add users to organization "{row.organization_name or organization_id}"'
            )

        role = row.role
        workspace_id = None
        if row.workspace_name:
            workspace_id = self.resolver.resolve_workspace(row.workspace_name, organization_id)

        facility_id = None
        if requires_facility(role):
            if not row.facility_name:
                raise ResolutionError(f"Facility is required for role {role.value}")
            facility = self.resolver.resolve_facility(row.facility_name, workspace_id, organization_id)
            facility_id = facility.id
            if workspace_id is None:
                workspace_id = facility.workspace_id

        if requires_workspace(role) and workspace_id is None:
            raise ResolutionError(f"Workspace is required for role {role.value}")

        department_id = None
        specialty_id = None
        if requires_department(role):
            if not row.department_name:
                raise ResolutionError(f"Department is required for role {role.value}")
            department_id = self.resolver.resolve_department(row.department_name, facility_id, row.facility_name)
            if row.specialty_name:
                specialty_id = self.resolver.resolve_specialty(row.specialty_name, department_id)

        return ScopeContext(
            organization_id=organization_id,
            workspace_id=workspace_id,
            facility_id=facility_id,
            department_id=department_id,
            specialty_id=specialty_id,
        )

    def _obtain_identity(self, email: str, full_name: str) -> tuple[int, bool, str | None]:
        existing_id = self.store.find_user_id_by_email(email)
        if existing_id is not None:
            return existing_id, False, None

        password = self.password_factory(self.password_length)
        try:
            user_id = self.store.create_account(
                email=email, password=password, full_name=full_name, created_by_id=self.created_by_id
            )
        except AccountExistsError:
            # Lost a create race; the other writer's account is ours to reuse
            user_id = self.store.find_user_id_by_email(email)
            if user_id is None:
                raise ProvisioningError(f"Account for {email} exists but could not be loaded")
            return user_id, False, None
        return user_id, True, password

    def _write(self, row: ImportRow, scope: ScopeContext) -> ProvisionedIdentity:
        email = normalize_email(row.email)
        user_id, created, password = self._obtain_identity(email, row.full_name)

        self.store.upsert_profile(
            user_id=user_id,
            email=email,
            full_name=row.full_name,
            created_by_id=self.created_by_id,
            force_password_change=created,
        )
        self.store.upsert_role_assignment(
            user_id=user_id, role=row.role, scope=scope, created_by_id=self.created_by_id
        )

        year = self.today().year
        for vacation_type_id in self.store.list_active_vacation_type_ids(scope.organization_id):
            self.store.ensure_leave_balance(
                user_id=user_id,
                vacation_type_id=vacation_type_id,
                organization_id=scope.organization_id,
                year=year,
            )

        self.store.commit()
        return ProvisionedIdentity(
            user_id=user_id,
            email=email,
            full_name=row.full_name,
            scope=scope,
            created=created,
            temporary_password=password,
        )

    def provision(self, row: ImportRow, row_number: int, default_organization_id: int | None) -> ProvisionResult:
        """Provision one row; every failure is returned, never raised."""

        try:
            scope = self.resolve_scope(row, default_organization_id)
        except ResolutionError as exc:
            return ProvisionFailure(row=row_number, email=row.email, reason=str(exc))
        except SQLAlchemyError as exc:
            self.store.rollback()
            logger.exception("Lookup failed while resolving row %s (%s)", row_number, row.email)
            return ProvisionFailure(row=row_number, email=row.email, reason=f"Failed to resolve scope: {exc}")

        try:
            identity = self._write(row, scope)
        except ProvisioningError as exc:
            self.store.rollback()
            return ProvisionFailure(row=row_number, email=row.email, reason=str(exc))
        except (SQLAlchemyError, LookupError) as exc:
            self.store.rollback()
            logger.exception("Store error while provisioning row %s (%s)", row_number, row.email)
            return ProvisionFailure(row=row_number, email=row.email, reason=f"Failed to provision user: {exc}")

        return ProvisionSuccess(row=row_number, identity=identity)
