# planivo/utils/permissions.py

from functools import wraps

from flask import g, jsonify
from flask_login import current_user

from planivo.models import ADMIN_ROLES, AppRole, Organization, UserRole


def get_user_organizations(user):
    """Get all active organizations a user holds a role in"""
    if not user or not user.is_authenticated:
        return []

    if user.is_super_admin:
        # Super admins can access all organizations
        return Organization.query.filter_by(is_active=True).order_by(Organization.name).all()

    org_ids = {
        assignment.organization_id
        for assignment in UserRole.find_for_user(user.id)
        if assignment.organization_id is not None
    }
    if not org_ids:
        return []
    return (
        Organization.query.filter(Organization.id.in_(org_ids), Organization.is_active.is_(True))
        .order_by(Organization.name)
        .all()
    )


def has_role(user, role, organization=None):
    """Check if user holds ``role``, optionally within a specific organization"""
    if not user or not user.is_authenticated:
        return False

    wanted = AppRole.from_value(role)
    if wanted is None:
        return False

    if wanted is AppRole.SUPER_ADMIN:
        return user.is_super_admin

    for assignment in UserRole.find_for_user(user.id, roles=(wanted,)):
        if organization is None or assignment.organization_id == organization.id:
            return True
    return False


def has_admin_role(user):
    """True when the user may run administrative operations such as bulk imports"""
    if not user or not user.is_authenticated:
        return False
    return bool(UserRole.find_for_user(user.id, roles=ADMIN_ROLES))


def can_access_organization(user, organization):
    """Check if user may act within the organization"""
    if not user or not user.is_authenticated or not organization:
        return False

    if user.is_super_admin:
        return True

    return any(org.id == organization.id for org in get_user_organizations(user))


def admin_api_required(f):
    """Decorator for JSON endpoints that require an administrative role"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Unauthorized'}), 401

        if not has_admin_role(current_user):
            return jsonify({'error': 'Insufficient permissions. Admin role required.'}), 403

        return f(*args, **kwargs)

    return decorated_function


def get_current_organization():
    """
    Get the current organization from Flask request context.
    This is set by middleware from URL parameter, header or session.
    """
    return getattr(g, 'current_organization', None)


def set_current_organization(organization):
    """Set the current organization in Flask request context"""
    g.current_organization = organization
