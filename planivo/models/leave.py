# planivo/models/leave.py

from .base import BaseModel, db


class VacationType(BaseModel):
    """Leave category configured per organization (annual, sick, ...)"""

    __tablename__ = "vacation_types"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    max_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    organization = db.relationship("Organization", back_populates="vacation_types")

    __table_args__ = (db.UniqueConstraint("organization_id", "name", name="_vacation_type_org_name_uc"),)

    def __repr__(self):
        return f"<VacationType {self.name}>"


class LeaveBalance(BaseModel):
    """Per-year leave balance for one staff member and one vacation type"""

    __tablename__ = "leave_balances"

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vacation_type_id = db.Column(db.Integer, db.ForeignKey("vacation_types.id"), nullable=False)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    balance = db.Column(db.Numeric(8, 2), default=0, nullable=False)
    accrued = db.Column(db.Numeric(8, 2), default=0, nullable=False)
    used = db.Column(db.Numeric(8, 2), default=0, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    vacation_type = db.relationship("VacationType")

    __table_args__ = (
        db.UniqueConstraint("staff_id", "vacation_type_id", "year", name="_leave_balance_staff_type_year_uc"),
    )

    def __repr__(self):
        return f"<LeaveBalance staff={self.staff_id} type={self.vacation_type_id} year={self.year}>"
