from __future__ import annotations

import itertools
from collections import Counter
from datetime import date
from types import SimpleNamespace

import pytest

from planivo.bulk_import.contracts import ImportRow
from planivo.bulk_import.provisioner import RowProvisioner
from planivo.bulk_import.resolver import NameResolver, ResolutionCache
from planivo.bulk_import.store import AccountExistsError, FacilityRef
from planivo.models.role import AppRole

FIXED_TODAY = date(2025, 3, 1)
FIXED_PASSWORD = "Temp-Passw0rd!xyz"


class FakeDirectoryStore:
    """In-memory ``DirectoryStore`` that counts every call."""

    def __init__(self):
        self.organizations: dict[str, int] = {}
        self.workspaces: dict[tuple[int, str], int] = {}
        self.facilities: list[tuple[int, FacilityRef]] = []
        self.departments: dict[tuple[int, str], int] = {}
        self.specialties: dict[tuple[int, str], int] = {}
        self.users: dict[str, int] = {}
        self.profiles: dict[int, dict] = {}
        self.role_assignments: dict[tuple, int | None] = {}
        self.vacation_types: dict[int, list[int]] = {}
        self.balances: dict[tuple[int, int, int], int] = {}
        self.calls: Counter = Counter()
        self.commits = 0
        self.rollbacks = 0
        # method name -> exception raised on every call
        self.errors: dict[str, Exception] = {}
        # emails another writer registers just before our create_account
        self.concurrent_creations: set[str] = set()
        self._ids = itertools.count(1)

    def _track(self, name):
        self.calls[name] += 1
        error = self.errors.get(name)
        if error is not None:
            raise error

    # -- seeding ---------------------------------------------------------

    def add_organization(self, name):
        org_id = next(self._ids)
        self.organizations[name.lower()] = org_id
        return org_id

    def add_workspace(self, organization_id, name):
        workspace_id = next(self._ids)
        self.workspaces[(organization_id, name.lower())] = workspace_id
        return workspace_id

    def add_facility(self, organization_id, workspace_id, name):
        ref = FacilityRef(id=next(self._ids), workspace_id=workspace_id, name=name)
        self.facilities.append((organization_id, ref))
        return ref

    def add_department(self, facility_id, name):
        department_id = next(self._ids)
        self.departments[(facility_id, name.lower())] = department_id
        return department_id

    def add_specialty(self, department_id, name):
        specialty_id = next(self._ids)
        self.specialties[(department_id, name.lower())] = specialty_id
        return specialty_id

    def add_vacation_type(self, organization_id):
        vacation_type_id = next(self._ids)
        self.vacation_types.setdefault(organization_id, []).append(vacation_type_id)
        return vacation_type_id

    def add_user(self, email):
        user_id = next(self._ids)
        self.users[email.lower()] = user_id
        return user_id

    # -- DirectoryStore ----------------------------------------------------

    def find_organization_id(self, name):
        self._track("find_organization_id")
        return self.organizations.get(name.strip().lower())

    def find_workspace_id(self, name, organization_id):
        self._track("find_workspace_id")
        return self.workspaces.get((organization_id, name.strip().lower()))

    def find_facilities(self, name, organization_id, workspace_id=None):
        self._track("find_facilities")
        return [
            ref
            for org_id, ref in self.facilities
            if org_id == organization_id
            and ref.name.lower() == name.strip().lower()
            and (workspace_id is None or ref.workspace_id == workspace_id)
        ]

    def find_department_id(self, name, facility_id):
        self._track("find_department_id")
        return self.departments.get((facility_id, name.strip().lower()))

    def find_specialty_id(self, name, department_id):
        self._track("find_specialty_id")
        return self.specialties.get((department_id, name.strip().lower()))

    def find_user_id_by_email(self, email):
        self._track("find_user_id_by_email")
        return self.users.get(email.lower())

    def create_account(self, *, email, password, full_name, created_by_id):
        self._track("create_account")
        if email in self.concurrent_creations:
            self.concurrent_creations.discard(email)
            self.add_user(email)
            raise AccountExistsError(email)
        if email in self.users:
            raise AccountExistsError(email)
        return self.add_user(email)

    def upsert_profile(self, *, user_id, email, full_name, created_by_id, force_password_change):
        self._track("upsert_profile")
        profile = self.profiles.setdefault(user_id, {"force_password_change": False})
        profile.update(email=email, full_name=full_name)
        if force_password_change:
            profile["force_password_change"] = True

    def upsert_role_assignment(self, *, user_id, role, scope, created_by_id):
        self._track("upsert_role_assignment")
        key = (user_id, role, scope.organization_id, scope.workspace_id, scope.facility_id, scope.department_id)
        inserted = key not in self.role_assignments
        self.role_assignments[key] = scope.specialty_id
        return inserted

    def list_active_vacation_type_ids(self, organization_id):
        self._track("list_active_vacation_type_ids")
        return list(self.vacation_types.get(organization_id, []))

    def ensure_leave_balance(self, *, user_id, vacation_type_id, organization_id, year):
        self._track("ensure_leave_balance")
        key = (user_id, vacation_type_id, year)
        if key in self.balances:
            return False
        self.balances[key] = 0
        return True

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture
def fake_directory():
    """
    Seeded fake store.

    Acme Health
      Main: F1 (D1 with specialty Cardiology), Shared
      Annex: F2 (D2), Shared
    """
    store = FakeDirectoryStore()
    org_id = store.add_organization("Acme Health")
    main_id = store.add_workspace(org_id, "Main")
    annex_id = store.add_workspace(org_id, "Annex")
    f1 = store.add_facility(org_id, main_id, "F1")
    f2 = store.add_facility(org_id, annex_id, "F2")
    shared_main = store.add_facility(org_id, main_id, "Shared")
    shared_annex = store.add_facility(org_id, annex_id, "Shared")
    d1 = store.add_department(f1.id, "D1")
    d2 = store.add_department(f2.id, "D2")
    cardiology = store.add_specialty(d1, "Cardiology")
    vacation_types = [store.add_vacation_type(org_id), store.add_vacation_type(org_id)]

    return SimpleNamespace(
        store=store,
        org_id=org_id,
        main_id=main_id,
        annex_id=annex_id,
        f1=f1,
        f2=f2,
        shared_main=shared_main,
        shared_annex=shared_annex,
        d1=d1,
        d2=d2,
        cardiology=cardiology,
        vacation_types=vacation_types,
    )


@pytest.fixture
def make_provisioner():
    """Build a ``RowProvisioner`` over ``store`` with deterministic password and date"""

    def _make(store, *, created_by_id=99, cache=None, allowed_organization_ids=None):
        resolver = NameResolver(store, cache if cache is not None else ResolutionCache())
        return RowProvisioner(
            store,
            resolver,
            created_by_id=created_by_id,
            password_factory=lambda length: FIXED_PASSWORD,
            today=lambda: FIXED_TODAY,
            allowed_organization_ids=allowed_organization_ids,
        )

    return _make


@pytest.fixture
def staff_row():
    """Factory for a staff row placed in F1 / D1"""

    def _staff_row(email="nurse@example.com", **overrides):
        values = {
            "email": email,
            "full_name": "Nora Nurse",
            "role": AppRole.STAFF,
            "facility_name": "F1",
            "department_name": "D1",
        }
        values.update(overrides)
        return ImportRow(**values)

    return _staff_row
