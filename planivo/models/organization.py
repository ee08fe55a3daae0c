# planivo/models/organization.py

from flask import current_app
from sqlalchemy import Index
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db


class Organization(BaseModel):
    """Top-level tenant owning workspaces, vacation types and a subscription"""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    # 'planning' tracks requests only, 'full' also deducts leave balances on approval
    vacation_mode = db.Column(db.String(20), default="planning", nullable=False)

    # Relationships
    workspaces = db.relationship("Workspace", back_populates="organization", cascade="all, delete-orphan")
    vacation_types = db.relationship("VacationType", back_populates="organization", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Organization {self.name}>"

    @staticmethod
    def find_by_slug(slug):
        """Find organization by slug with error handling"""
        try:
            return Organization.query.filter_by(slug=slug).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding organization by slug {slug}: {str(e)}")
            return None

    @staticmethod
    def find_by_id(org_id):
        """Find organization by ID with error handling"""
        try:
            return db.session.get(Organization, org_id)
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding organization by id {org_id}: {str(e)}")
            return None


class Workspace(BaseModel):
    """Subdivision of an organization containing facilities"""

    __tablename__ = "workspaces"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    organization = db.relationship("Organization", back_populates="workspaces")
    facilities = db.relationship("Facility", back_populates="workspace", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_workspaces_name_org", "name", "organization_id"),)

    def __repr__(self):
        return f"<Workspace {self.name}>"


class Facility(BaseModel):
    """Physical or logical site inside a workspace"""

    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)

    workspace = db.relationship("Workspace", back_populates="facilities")
    departments = db.relationship("Department", back_populates="facility", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_facilities_name_ws", "name", "workspace_id"),)

    def __repr__(self):
        return f"<Facility {self.name}>"


class Department(BaseModel):
    """
    Unit within a facility.

    A department whose ``parent_department_id`` is set is a specialty of that
    parent department.
    """

    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=True, index=True)
    parent_department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100), nullable=True)

    facility = db.relationship("Facility", back_populates="departments")
    parent_department = db.relationship("Department", remote_side=[id], backref="specialties")

    __table_args__ = (Index("idx_departments_name_fac", "name", "facility_id"),)

    def __repr__(self):
        return f"<Department {self.name}>"

    @property
    def is_specialty(self):
        return self.parent_department_id is not None
