"""
Directory store used by the bulk importer.

The importer never touches ``db.session`` directly; it talks to a
``DirectoryStore`` handed to it by the caller. ``SQLAlchemyDirectoryStore`` is
the production implementation; tests may pass any object with the same
methods.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from planivo.models import (
    Department,
    Facility,
    LeaveBalance,
    Organization,
    User,
    UserRole,
    VacationType,
    Workspace,
    db,
)
from planivo.models.role import AppRole
from planivo.models.user import normalize_email

from .results import ScopeContext


class AccountExistsError(Exception):
    """Raised by ``create_account`` when the email is already registered."""

    def __init__(self, email: str) -> None:
        super().__init__(f"A user with email {email} has already been registered")
        self.email = email


@dataclass(frozen=True)
class FacilityRef:
    id: int
    workspace_id: int
    name: str


class DirectoryStore(Protocol):
    """Lookups and idempotent writes the importer needs from the backing store."""

    def find_organization_id(self, name: str) -> int | None: ...

    def find_workspace_id(self, name: str, organization_id: int) -> int | None: ...

    def find_facilities(
        self, name: str, organization_id: int, workspace_id: int | None = None
    ) -> Sequence[FacilityRef]: ...

    def find_department_id(self, name: str, facility_id: int) -> int | None: ...

    def find_specialty_id(self, name: str, department_id: int) -> int | None: ...

    def find_user_id_by_email(self, email: str) -> int | None: ...

    def create_account(self, *, email: str, password: str, full_name: str, created_by_id: int | None) -> int: ...

    def upsert_profile(
        self,
        *,
        user_id: int,
        email: str,
        full_name: str,
        created_by_id: int | None,
        force_password_change: bool,
    ) -> None: ...

    def upsert_role_assignment(
        self, *, user_id: int, role: AppRole, scope: ScopeContext, created_by_id: int | None
    ) -> bool: ...

    def list_active_vacation_type_ids(self, organization_id: int) -> List[int]: ...

    def ensure_leave_balance(self, *, user_id: int, vacation_type_id: int, organization_id: int, year: int) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def _iequals(column, value: str):
    return func.lower(column) == value.strip().lower()


class SQLAlchemyDirectoryStore:
    """``DirectoryStore`` backed by the application database."""

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session

    # -- lookups -------------------------------------------------------

    def find_organization_id(self, name: str) -> int | None:
        org = (
            self.session.query(Organization.id)
            .filter(_iequals(Organization.name, name), Organization.is_active.is_(True))
            .order_by(Organization.id)
            .first()
        )
        return org.id if org else None

    def find_workspace_id(self, name: str, organization_id: int) -> int | None:
        workspace = (
            self.session.query(Workspace.id)
            .filter(_iequals(Workspace.name, name), Workspace.organization_id == organization_id)
            .order_by(Workspace.id)
            .first()
        )
        return workspace.id if workspace else None

    def find_facilities(
        self, name: str, organization_id: int, workspace_id: int | None = None
    ) -> List[FacilityRef]:
        query = (
            self.session.query(Facility.id, Facility.workspace_id, Facility.name)
            .join(Workspace, Facility.workspace_id == Workspace.id)
            .filter(_iequals(Facility.name, name), Workspace.organization_id == organization_id)
        )
        if workspace_id is not None:
            query = query.filter(Facility.workspace_id == workspace_id)
        return [FacilityRef(id=row.id, workspace_id=row.workspace_id, name=row.name) for row in query.order_by(Facility.id)]

    def find_department_id(self, name: str, facility_id: int) -> int | None:
        department = (
            self.session.query(Department.id)
            .filter(
                _iequals(Department.name, name),
                Department.facility_id == facility_id,
            )
            .order_by(Department.id)
            .first()
        )
        return department.id if department else None

    def find_specialty_id(self, name: str, department_id: int) -> int | None:
        specialty = (
            self.session.query(Department.id)
            .filter(_iequals(Department.name, name), Department.parent_department_id == department_id)
            .order_by(Department.id)
            .first()
        )
        return specialty.id if specialty else None

    def find_user_id_by_email(self, email: str) -> int | None:
        normalized = normalize_email(email)
        user = self.session.query(User.id).filter(func.lower(User.email) == normalized).first()
        return user.id if user else None

    # -- writes --------------------------------------------------------

    def create_account(self, *, email: str, password: str, full_name: str, created_by_id: int | None) -> int:
        user = User(
            email=normalize_email(email),
            full_name=full_name,
            is_active=True,
            force_password_change=True,
            created_by_id=created_by_id,
        )
        user.set_password(password)
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Account creation is the first write of a row, so nothing else is lost here
            self.session.rollback()
            raise AccountExistsError(email) from exc
        return user.id

    def upsert_profile(
        self,
        *,
        user_id: int,
        email: str,
        full_name: str,
        created_by_id: int | None,
        force_password_change: bool,
    ) -> None:
        user = self.session.get(User, user_id)
        if user is None:
            raise LookupError(f"User {user_id} disappeared before profile update")
        user.email = normalize_email(email)
        user.full_name = full_name
        if user.is_active is None:
            user.is_active = True
        if force_password_change:
            user.force_password_change = True
        if user.created_by_id is None and created_by_id is not None and created_by_id != user.id:
            user.created_by_id = created_by_id
        self.session.flush()

    def upsert_role_assignment(
        self, *, user_id: int, role: AppRole, scope: ScopeContext, created_by_id: int | None
    ) -> bool:
        """Insert the assignment unless its composite key exists; returns True when inserted."""

        # filter_by(None) renders IS NULL, which the unique constraint cannot enforce
        existing = (
            self.session.query(UserRole)
            .filter_by(
                user_id=user_id,
                role=role,
                organization_id=scope.organization_id,
                workspace_id=scope.workspace_id,
                facility_id=scope.facility_id,
                department_id=scope.department_id,
            )
            .first()
        )
        if existing is not None:
            existing.specialty_id = scope.specialty_id
            self.session.flush()
            return False

        self.session.add(
            UserRole(
                user_id=user_id,
                role=role,
                organization_id=scope.organization_id,
                workspace_id=scope.workspace_id,
                facility_id=scope.facility_id,
                department_id=scope.department_id,
                specialty_id=scope.specialty_id,
                created_by_id=created_by_id,
            )
        )
        self.session.flush()
        return True

    def list_active_vacation_type_ids(self, organization_id: int) -> List[int]:
        rows = (
            self.session.query(VacationType.id)
            .filter(VacationType.organization_id == organization_id, VacationType.is_active.is_(True))
            .order_by(VacationType.id)
            .all()
        )
        return [row.id for row in rows]

    def ensure_leave_balance(self, *, user_id: int, vacation_type_id: int, organization_id: int, year: int) -> bool:
        """Create a zero balance when none exists; existing balances are never modified."""

        exists = (
            self.session.query(LeaveBalance.id)
            .filter_by(staff_id=user_id, vacation_type_id=vacation_type_id, year=year)
            .first()
        )
        if exists is not None:
            return False
        self.session.add(
            LeaveBalance(
                staff_id=user_id,
                vacation_type_id=vacation_type_id,
                organization_id=organization_id,
                balance=0,
                accrued=0,
                used=0,
                year=year,
            )
        )
        self.session.flush()
        return True

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
