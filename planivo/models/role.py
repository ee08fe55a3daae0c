# planivo/models/role.py

from enum import Enum as PyEnum

from flask import current_app
from sqlalchemy import Enum
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db


class AppRole(PyEnum):
    """Permission levels a user can hold within an organization scope"""

    SUPER_ADMIN = "super_admin"
    ORGANIZATION_ADMIN = "organization_admin"
    GENERAL_ADMIN = "general_admin"
    WORKSPACE_SUPERVISOR = "workspace_supervisor"
    WORKPLACE_SUPERVISOR = "workplace_supervisor"
    FACILITY_SUPERVISOR = "facility_supervisor"
    DEPARTMENT_HEAD = "department_head"
    STAFF = "staff"
    INTERN = "intern"

    @classmethod
    def from_value(cls, value):
        """Return the member for ``value`` (case-insensitive) or None"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        token = value.strip().lower()
        for member in cls:
            if member.value == token:
                return member
        return None


# Roles allowed to run administrative operations such as bulk imports
ADMIN_ROLES = (AppRole.SUPER_ADMIN, AppRole.ORGANIZATION_ADMIN, AppRole.GENERAL_ADMIN)

# Roles that can be provisioned through the bulk importer
IMPORTABLE_ROLES = tuple(role for role in AppRole if role is not AppRole.SUPER_ADMIN)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UserRole(BaseModel):
    """
    Scoped role assignment.

    The natural key is (user, role, workspace, facility, department,
    organization); re-assigning the same scope must update in place.
    """

    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(
        Enum(AppRole, name="app_role", native_enum=False, values_callable=_enum_values, length=50),
        nullable=False,
        index=True,
    )
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    specialty_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Relationships
    user = db.relationship("User", back_populates="roles", foreign_keys=[user_id])
    organization = db.relationship("Organization")

    __table_args__ = (
        db.UniqueConstraint(
            "user_id",
            "role",
            "workspace_id",
            "facility_id",
            "department_id",
            "organization_id",
            name="_user_role_scope_uc",
        ),
    )

    def __repr__(self):
        return f"<UserRole user={self.user_id} role={self.role.value if self.role else None}>"

    @staticmethod
    def find_for_user(user_id, roles=None):
        """Return role assignments for a user, optionally limited to ``roles``"""
        try:
            query = UserRole.query.filter_by(user_id=user_id)
            if roles:
                query = query.filter(UserRole.role.in_(tuple(roles)))
            return query.all()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error loading roles for user {user_id}: {str(e)}")
            return []
