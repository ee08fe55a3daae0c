# planivo/models/security.py

from .base import BaseModel, db, utcnow


class RateLimit(BaseModel):
    """Fixed-window request counter per (identifier, action)"""

    __tablename__ = "rate_limits"

    id = db.Column(db.Integer, primary_key=True)
    identifier = db.Column(db.String(255), nullable=False)
    action_type = db.Column(db.String(100), nullable=False)
    request_count = db.Column(db.Integer, default=0, nullable=False)
    window_start = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (db.UniqueConstraint("identifier", "action_type", name="_rate_limit_identifier_action_uc"),)

    def __repr__(self):
        return f"<RateLimit {self.identifier}:{self.action_type} count={self.request_count}>"


class OtpVerification(BaseModel):
    """One-time passcode issued for a sensitive account change"""

    __tablename__ = "otp_verifications"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    otp_code = db.Column(db.String(255), nullable=False)
    purpose = db.Column(db.String(50), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failed_attempts = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (db.Index("idx_otp_verifications_email_purpose", "email", "purpose"),)

    def __repr__(self):
        return f"<OtpVerification {self.email} purpose={self.purpose}>"
