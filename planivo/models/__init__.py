# planivo/models/__init__.py
"""
Database models package
"""

from .admin import AdminLog
from .base import BaseModel, db
from .leave import LeaveBalance, VacationType
from .organization import Department, Facility, Organization, Workspace
from .role import ADMIN_ROLES, IMPORTABLE_ROLES, AppRole, UserRole
from .security import OtpVerification, RateLimit
from .user import User, normalize_email

__all__ = [
    "db",
    "BaseModel",
    "User",
    "normalize_email",
    "AdminLog",
    "Organization",
    "Workspace",
    "Facility",
    "Department",
    "AppRole",
    "ADMIN_ROLES",
    "IMPORTABLE_ROLES",
    "UserRole",
    "VacationType",
    "LeaveBalance",
    "RateLimit",
    "OtpVerification",
]
