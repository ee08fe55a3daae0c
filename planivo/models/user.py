# planivo/models/user.py

from flask import current_app
from flask_login import UserMixin
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from .base import BaseModel, db, utcnow
from .role import ADMIN_ROLES, AppRole, UserRole


def normalize_email(email):
    """Lower-case and trim an email address; returns '' for empty input"""
    if not email:
        return ""
    return str(email).strip().lower()


class User(UserMixin, BaseModel):
    """Account plus profile for a person using Planivo"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(100), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    force_password_change = db.Column(db.Boolean, default=False, nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    roles = db.relationship(
        "UserRole",
        back_populates="user",
        foreign_keys=[UserRole.user_id],
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<User {self.email}>"

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash or not password:
            return False
        return check_password_hash(self.password_hash, password)

    def mark_login(self):
        self.last_login = utcnow()

    def has_any_role(self, roles):
        wanted = {AppRole.from_value(role) for role in roles}
        return any(assignment.role in wanted for assignment in self.roles)

    @property
    def is_super_admin(self):
        return self.has_any_role((AppRole.SUPER_ADMIN,))

    @property
    def is_admin(self):
        return self.has_any_role(ADMIN_ROLES)

    @staticmethod
    def find_by_email(email):
        """Find user by normalized email with error handling"""
        normalized = normalize_email(email)
        if not normalized:
            return None
        try:
            return User.query.filter(db.func.lower(User.email) == normalized).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding user by email {normalized}: {str(e)}")
            return None
