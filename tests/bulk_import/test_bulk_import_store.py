from decimal import Decimal

import pytest

from planivo.bulk_import.results import ScopeContext
from planivo.bulk_import.store import AccountExistsError, SQLAlchemyDirectoryStore
from planivo.models import LeaveBalance, Organization, User, UserRole, Workspace, db
from planivo.models.role import AppRole


@pytest.fixture
def store(app):
    return SQLAlchemyDirectoryStore()


class TestLookups:
    """Case-insensitive, scoped lookups"""

    def test_find_organization_ignores_case(self, store, org_tree):
        assert store.find_organization_id("general HOSPITAL") == org_tree.org.id
        assert store.find_organization_id("Elsewhere") is None

    def test_inactive_organization_is_invisible(self, store, org_tree):
        dormant = Organization(name="Dormant Clinic", slug="dormant", is_active=False)
        db.session.add(dormant)
        db.session.commit()

        assert store.find_organization_id("Dormant Clinic") is None

    def test_find_workspace_is_scoped(self, store, org_tree):
        other = Organization(name="Other Org", slug="other-org")
        db.session.add(other)
        db.session.flush()
        db.session.add(Workspace(organization_id=other.id, name="Main Workspace"))
        db.session.commit()

        assert store.find_workspace_id("main workspace", org_tree.org.id) == org_tree.main_ws.id
        assert store.find_workspace_id("Outpatient Workspace", other.id) is None

    def test_find_facilities_by_organization_and_workspace(self, store, org_tree):
        matches = store.find_facilities("north clinic", org_tree.org.id)

        assert [(ref.id, ref.workspace_id) for ref in matches] == [(org_tree.north.id, org_tree.outpatient_ws.id)]
        assert store.find_facilities("North Clinic", org_tree.org.id, org_tree.main_ws.id) == []

    def test_department_and_specialty(self, store, org_tree):
        assert store.find_department_id("EMERGENCY", org_tree.central.id) == org_tree.emergency.id
        assert store.find_department_id("Emergency", org_tree.north.id) is None
        assert store.find_specialty_id("triage", org_tree.emergency.id) == org_tree.triage.id
        assert store.find_specialty_id("Triage", org_tree.radiology.id) is None

    def test_find_user_by_email(self, store, admin_user):
        assert store.find_user_id_by_email(" ADMIN@example.com") == admin_user.id
        assert store.find_user_id_by_email("ghost@example.com") is None

    def test_active_vacation_types_only(self, store, org_tree):
        ids = store.list_active_vacation_type_ids(org_tree.org.id)

        assert ids == sorted(vt.id for vt in org_tree.active_vacation_types)
        assert org_tree.retired_vacation_type.id not in ids


class TestWrites:
    """Idempotent writes"""

    def test_create_account_forces_password_change(self, store, admin_user):
        user_id = store.create_account(
            email="New.Hire@Example.com", password="S3cret-Passw0rd!", full_name="New Hire", created_by_id=admin_user.id
        )
        store.commit()

        user = db.session.get(User, user_id)
        assert user.email == "new.hire@example.com"
        assert user.force_password_change is True
        assert user.created_by_id == admin_user.id
        assert user.check_password("S3cret-Passw0rd!")

    def test_create_account_duplicate_email(self, store, admin_user):
        with pytest.raises(AccountExistsError):
            store.create_account(email="admin@example.com", password="x" * 16, full_name="Dup", created_by_id=None)

    def test_upsert_profile_renames_and_records_missing_creator(self, store, admin_user, staff_user):
        store.upsert_profile(
            user_id=staff_user.id,
            email="STAFF.member@example.com",
            full_name="Renamed Staff",
            created_by_id=admin_user.id,
            force_password_change=False,
        )
        store.commit()

        user = db.session.get(User, staff_user.id)
        assert user.full_name == "Renamed Staff"
        assert user.force_password_change is False
        assert user.created_by_id == admin_user.id

    def test_upsert_profile_for_missing_user(self, store):
        with pytest.raises(LookupError):
            store.upsert_profile(
                user_id=4242, email="x@example.com", full_name="X", created_by_id=None, force_password_change=True
            )

    def test_role_assignment_with_null_scope_is_not_duplicated(self, store, org_tree, staff_user):
        scope = ScopeContext(organization_id=org_tree.org.id, workspace_id=org_tree.main_ws.id)

        inserted_first = store.upsert_role_assignment(
            user_id=staff_user.id, role=AppRole.WORKSPACE_SUPERVISOR, scope=scope, created_by_id=None
        )
        inserted_second = store.upsert_role_assignment(
            user_id=staff_user.id, role=AppRole.WORKSPACE_SUPERVISOR, scope=scope, created_by_id=None
        )
        store.commit()

        assert inserted_first is True
        assert inserted_second is False
        assert UserRole.query.filter_by(user_id=staff_user.id, role=AppRole.WORKSPACE_SUPERVISOR).count() == 1

    def test_role_assignment_updates_specialty_in_place(self, store, org_tree, staff_user):
        base = dict(
            organization_id=org_tree.org.id,
            workspace_id=org_tree.main_ws.id,
            facility_id=org_tree.central.id,
            department_id=org_tree.emergency.id,
        )
        store.upsert_role_assignment(
            user_id=staff_user.id, role=AppRole.INTERN, scope=ScopeContext(**base), created_by_id=None
        )
        store.upsert_role_assignment(
            user_id=staff_user.id,
            role=AppRole.INTERN,
            scope=ScopeContext(**base, specialty_id=org_tree.triage.id),
            created_by_id=None,
        )
        store.commit()

        assignments = UserRole.query.filter_by(user_id=staff_user.id, role=AppRole.INTERN).all()
        assert len(assignments) == 1
        assert assignments[0].specialty_id == org_tree.triage.id

    def test_existing_leave_balance_is_never_modified(self, store, org_tree, staff_user):
        vacation_type = org_tree.active_vacation_types[0]
        db.session.add(
            LeaveBalance(
                staff_id=staff_user.id,
                vacation_type_id=vacation_type.id,
                organization_id=org_tree.org.id,
                balance=12,
                accrued=15,
                used=3,
                year=2025,
            )
        )
        db.session.commit()

        created = store.ensure_leave_balance(
            user_id=staff_user.id, vacation_type_id=vacation_type.id, organization_id=org_tree.org.id, year=2025
        )
        store.commit()

        assert created is False
        balance = LeaveBalance.query.filter_by(staff_id=staff_user.id, vacation_type_id=vacation_type.id).one()
        assert balance.balance == Decimal("12")
        assert balance.used == Decimal("3")

    def test_new_leave_balance_starts_at_zero(self, store, org_tree, staff_user):
        vacation_type = org_tree.active_vacation_types[1]

        created = store.ensure_leave_balance(
            user_id=staff_user.id, vacation_type_id=vacation_type.id, organization_id=org_tree.org.id, year=2026
        )
        store.commit()

        assert created is True
        balance = LeaveBalance.query.filter_by(staff_id=staff_user.id, year=2026).one()
        assert balance.balance == 0
        assert balance.accrued == 0
