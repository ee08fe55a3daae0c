# conftest.py

import os
from types import SimpleNamespace
from unittest.mock import patch

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from planivo.models import (  # noqa: E402
    AppRole,
    Department,
    Facility,
    Organization,
    User,
    UserRole,
    VacationType,
    Workspace,
    db,
)
from planivo.utils.auth_tokens import generate_token  # noqa: E402

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret-key-for-testing-only",
    "MONITORING_ENABLED": False,
    "ENABLE_FILE_LOGGING": False,
    "ENABLE_CONSOLE_LOGGING": False,
    "LOG_LEVEL": "DEBUG",
    "MAIL_SERVER": None,
    "MAIL_USERNAME": None,
    "MAIL_PASSWORD": None,
    "PUBLIC_APP_URL": "https://planivo.test",
    "BULK_IMPORT_ENABLED": True,
    "BULK_IMPORT_MAX_ROWS": 100,
    "BULK_IMPORT_RATE_LIMIT_MAX": 5,
    "BULK_IMPORT_RATE_LIMIT_WINDOW_SECONDS": 300,
    "BULK_IMPORT_TIMEOUT_SECONDS": 0,
    "BULK_IMPORT_PASSWORD_LENGTH": 16,
    "BULK_IMPORT_SEND_WELCOME_EMAIL": True,
    "AUTH_TOKEN_MAX_AGE_SECONDS": 3600,
    "OTP_EXPIRY_MINUTES": 10,
    "OTP_RATE_LIMIT_MAX": 3,
    "OTP_RATE_LIMIT_WINDOW_SECONDS": 600,
    "OTP_MAX_ATTEMPTS": 3,
    "OTP_VERIFY_RATE_LIMIT_MAX": 6,
}

DEFAULT_PASSWORD = "Adminpass123!"


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application with a clean database"""
    flask_app.config.update(TEST_CONFIG)

    with flask_app.app_context():
        # Drop any existing tables to ensure clean state
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def org_tree(app):
    """
    Organization hierarchy used by most bulk import tests.

    General Hospital
      Main Workspace
        Central Clinic
          Emergency (specialty: Triage)
          Radiology
      Outpatient Workspace
        North Clinic
          Pediatrics
    """
    org = Organization(name="General Hospital", slug="general-hospital", is_active=True)
    db.session.add(org)
    db.session.flush()

    main_ws = Workspace(organization_id=org.id, name="Main Workspace")
    outpatient_ws = Workspace(organization_id=org.id, name="Outpatient Workspace")
    db.session.add_all([main_ws, outpatient_ws])
    db.session.flush()

    central = Facility(workspace_id=main_ws.id, name="Central Clinic")
    north = Facility(workspace_id=outpatient_ws.id, name="North Clinic")
    db.session.add_all([central, north])
    db.session.flush()

    emergency = Department(facility_id=central.id, name="Emergency")
    radiology = Department(facility_id=central.id, name="Radiology")
    pediatrics = Department(facility_id=north.id, name="Pediatrics")
    db.session.add_all([emergency, radiology, pediatrics])
    db.session.flush()

    triage = Department(facility_id=central.id, parent_department_id=emergency.id, name="Triage")
    db.session.add(triage)

    annual = VacationType(organization_id=org.id, name="Annual Leave", max_days=25, is_active=True)
    sick = VacationType(organization_id=org.id, name="Sick Leave", max_days=10, is_active=True)
    retired = VacationType(organization_id=org.id, name="Legacy Leave", is_active=False)
    db.session.add_all([annual, sick, retired])
    db.session.commit()

    return SimpleNamespace(
        org=org,
        main_ws=main_ws,
        outpatient_ws=outpatient_ws,
        central=central,
        north=north,
        emergency=emergency,
        radiology=radiology,
        pediatrics=pediatrics,
        triage=triage,
        active_vacation_types=[annual, sick],
        retired_vacation_type=retired,
    )


@pytest.fixture
def make_user(app):
    """Factory creating a persisted user with optional role assignments"""

    def _make_user(email, *, full_name="Test User", password=DEFAULT_PASSWORD, roles=(), organization=None, is_active=True):
        user = User(email=email, full_name=full_name, is_active=is_active)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        for role in roles:
            db.session.add(
                UserRole(
                    user_id=user.id,
                    role=AppRole.from_value(role),
                    organization_id=organization.id if organization is not None else None,
                )
            )
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def admin_user(make_user, org_tree):
    """Organization admin of the General Hospital organization"""
    return make_user(
        "admin@example.com",
        full_name="Org Admin",
        roles=(AppRole.ORGANIZATION_ADMIN,),
        organization=org_tree.org,
    )


@pytest.fixture
def super_admin_user(make_user):
    """Platform super admin"""
    return make_user("superadmin@example.com", full_name="Super Admin", roles=(AppRole.SUPER_ADMIN,))


@pytest.fixture
def staff_user(make_user, org_tree):
    """Non-administrative member of the General Hospital organization"""
    return make_user(
        "staff.member@example.com",
        full_name="Staff Member",
        roles=(AppRole.STAFF,),
        organization=org_tree.org,
    )


@pytest.fixture
def auth_headers(app):
    """Factory returning Authorization headers carrying a bearer token for ``user``"""

    def _auth_headers(user):
        return {"Authorization": f"Bearer {generate_token(user)}"}

    return _auth_headers


@pytest.fixture
def mail_enabled(app):
    """Configure an SMTP transport (still mocked by ``mock_smtp``)"""
    app.config.update(
        {
            "MAIL_SERVER": "smtp.example.com",
            "MAIL_PORT": 587,
            "MAIL_USE_TLS": True,
            "MAIL_USERNAME": "mailer",
            "MAIL_PASSWORD": "secret",
            "MAIL_FROM": "no-reply@planivo.com",
        }
    )
    return app


@pytest.fixture
def mock_smtp():
    """Mock the SMTP client used by the mail side channel"""
    with patch("planivo.bulk_import.notifications.smtplib.SMTP") as mock_smtp_class:
        yield mock_smtp_class


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
