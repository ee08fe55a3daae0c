# planivo/routes/auth.py

"""
Authentication API: bearer tokens and OTP-verified password changes
"""

import secrets
from datetime import timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from planivo.bulk_import.notifications import SMTPMailer, send_otp_email
from planivo.models import OtpVerification, User, db, normalize_email
from planivo.models.base import utcnow
from planivo.utils.auth_tokens import generate_token
from planivo.utils.rate_limit import check_rate_limit

OTP_PURPOSE_PASSWORD = "password_change"
OTP_RATE_LIMIT_ACTION = "password_otp"
OTP_VERIFY_RATE_LIMIT_ACTION = "password_otp_verify"
INVALID_CODE_MESSAGE = "Invalid or expired verification code"
MIN_PASSWORD_LENGTH = 8


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _valid_email(value):
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        return None
    return normalize_email(value)


def _as_utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _too_many_requests(message, retry_after):
    response = jsonify({"error": message})
    response.status_code = 429
    if retry_after:
        response.headers["Retry-After"] = str(retry_after)
    return response


def generate_otp_code():
    return f"{secrets.randbelow(1_000_000):06d}"


def register_auth_routes(app):
    """Register authentication API routes"""

    @app.route("/api/auth/token", methods=["POST"], endpoint="auth_token")
    def issue_token():
        data = _json_body()
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            return jsonify({"error": "Email and password are required"}), 400

        user = User.find_by_email(email)
        if not user or not user.check_password(password) or not user.is_active:
            current_app.logger.warning(f"Failed token request for {normalize_email(email)}")
            return jsonify({"error": "Invalid email or password"}), 401

        try:
            user.mark_login()
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to record login for user {user.id}: {str(e)}")

        current_app.logger.info(f"Issued API token for user {user.id}")
        return jsonify(
            {
                "token": generate_token(user),
                "expires_in": current_app.config.get("AUTH_TOKEN_MAX_AGE_SECONDS", 3600),
                "force_password_change": bool(user.force_password_change),
            }
        )

    @app.route("/api/auth/password-otp", methods=["POST"], endpoint="auth_password_otp")
    def request_password_otp():
        """Issue a one-time code for a password change; never reveals whether the account exists"""
        email = _valid_email(_json_body().get("email"))
        if not email:
            return jsonify({"error": "A valid email is required"}), 400

        allowed, retry_after = check_rate_limit(
            email,
            OTP_RATE_LIMIT_ACTION,
            current_app.config.get("OTP_RATE_LIMIT_MAX", 3),
            current_app.config.get("OTP_RATE_LIMIT_WINDOW_SECONDS", 600),
        )
        if not allowed:
            return _too_many_requests("Too many verification requests. Please try again later.", retry_after)

        user = User.find_by_email(email)
        if user is None or not user.is_active:
            current_app.logger.info(f"Password OTP requested for unknown account {email}")
            return jsonify({"success": True})

        expiry_minutes = current_app.config.get("OTP_EXPIRY_MINUTES", 10)
        code = generate_otp_code()
        try:
            db.session.add(
                OtpVerification(
                    email=email,
                    otp_code=generate_password_hash(code),
                    purpose=OTP_PURPOSE_PASSWORD,
                    expires_at=utcnow() + timedelta(minutes=expiry_minutes),
                )
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to store OTP for {email}: {str(e)}")
            return jsonify({"error": "Could not issue verification code"}), 500

        send_otp_email(
            SMTPMailer.from_config(current_app.config),
            email,
            code,
            expiry_minutes=expiry_minutes,
            app_name=current_app.config.get("APP_NAME", "Planivo"),
        )
        return jsonify({"success": True})

    @app.route("/api/auth/password", methods=["POST"], endpoint="auth_password_change")
    def change_password():
        """Set a new password after verifying the latest OTP for the account"""
        data = _json_body()
        email = _valid_email(data.get("email"))
        otp = str(data.get("otp") or "").strip()
        new_password = data.get("new_password")

        if not email or not otp:
            return jsonify({"error": "Email and verification code are required"}), 400
        if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
            return jsonify({"error": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}), 400

        allowed, retry_after = check_rate_limit(
            email,
            OTP_VERIFY_RATE_LIMIT_ACTION,
            current_app.config.get("OTP_VERIFY_RATE_LIMIT_MAX", 10),
            current_app.config.get("OTP_RATE_LIMIT_WINDOW_SECONDS", 600),
        )
        if not allowed:
            return _too_many_requests("Too many verification attempts. Please try again later.", retry_after)

        # Unknown accounts get the same answer as a wrong code
        user = User.find_by_email(email)
        if user is None or not user.is_active:
            current_app.logger.info(f"Password change attempted for unknown account {email}")
            return jsonify({"error": INVALID_CODE_MESSAGE}), 400

        verification = (
            OtpVerification.query.filter_by(email=email, purpose=OTP_PURPOSE_PASSWORD, verified_at=None)
            .order_by(OtpVerification.created_at.desc(), OtpVerification.id.desc())
            .first()
        )
        max_attempts = current_app.config.get("OTP_MAX_ATTEMPTS", 5)
        now = utcnow()
        if (
            verification is None
            or _as_utc(verification.expires_at) <= now
            or (verification.failed_attempts or 0) >= max_attempts
        ):
            current_app.logger.warning(f"No usable password OTP for user {user.id}")
            return jsonify({"error": INVALID_CODE_MESSAGE}), 400

        if not check_password_hash(verification.otp_code, otp):
            try:
                verification.failed_attempts = (verification.failed_attempts or 0) + 1
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                current_app.logger.error(f"Failed to record OTP attempt for user {user.id}: {str(e)}")
            current_app.logger.warning(
                f"Wrong password OTP for user {user.id} ({verification.failed_attempts}/{max_attempts})"
            )
            return jsonify({"error": INVALID_CODE_MESSAGE}), 400

        try:
            verification.verified_at = now
            user.set_password(new_password)
            user.force_password_change = False
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to change password for user {user.id}: {str(e)}")
            return jsonify({"error": "Could not update password"}), 500

        current_app.logger.info(f"Password changed via OTP for user {user.id}")
        return jsonify({"success": True})
