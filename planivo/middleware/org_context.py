# planivo/middleware/org_context.py

from flask import current_app, g, request, session
from flask_login import current_user

from planivo.models import Organization
from planivo.utils.permissions import (
    can_access_organization,
    get_user_organizations,
    set_current_organization,
)

ORGANIZATION_HEADER = "X-Organization-Id"

SKIPPED_ENDPOINTS = ("static", "health", "metrics", "auth_token", "auth_password_otp", "auth_password_change")


def init_org_context_middleware(app):
    """Initialize organization context middleware"""

    @app.before_request
    def set_organization_context():
        """Set the current organization from query argument, header or session"""
        g.current_organization = None

        # Skip for static files and unauthenticated routes
        if request.endpoint in SKIPPED_ENDPOINTS:
            return

        org_id = request.args.get("org_id") or request.headers.get(ORGANIZATION_HEADER)
        org_slug = request.args.get("org_slug")

        # Or from session
        if not org_id and not org_slug:
            org_id = session.get("current_organization_id")
            org_slug = session.get("current_organization_slug")

        organization = None

        if org_id:
            try:
                organization = Organization.find_by_id(int(org_id))
            except (ValueError, TypeError):
                current_app.logger.warning(f"Invalid organization ID: {org_id}")

        if not organization and org_slug:
            organization = Organization.find_by_slug(org_slug)

        if organization:
            if not organization.is_active:
                current_app.logger.warning(f"Attempted access to inactive organization: {organization.id}")
                organization = None
            elif current_user.is_authenticated and not can_access_organization(current_user, organization):
                current_app.logger.warning(
                    f"User {current_user.id} requested organization {organization.id} without access"
                )
                organization = None
            else:
                set_current_organization(organization)
                session["current_organization_id"] = organization.id
                session["current_organization_slug"] = organization.slug

        # If user is logged in and has only one organization, auto-select it
        if not organization and current_user.is_authenticated:
            user_orgs = get_user_organizations(current_user)
            if len(user_orgs) == 1:
                set_current_organization(user_orgs[0])
                session["current_organization_id"] = user_orgs[0].id
                session["current_organization_slug"] = user_orgs[0].slug
