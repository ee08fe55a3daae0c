# planivo/utils/auth_tokens.py

"""
Signed bearer tokens for API callers.

Tokens are itsdangerous timed signatures over the user id, keyed by
``SECRET_KEY``; rotating the key invalidates every outstanding token.
"""

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from planivo.models import User, db

TOKEN_SALT = "planivo-api-token"


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def generate_token(user):
    """Return a signed token identifying ``user``"""
    return _serializer().dumps({"uid": user.id})


def verify_token(token, max_age=None):
    """
    Resolve a token back to an active user.

    Returns:
        User or None when the token is malformed, expired or the account is inactive
    """
    if not token:
        return None
    if max_age is None:
        max_age = current_app.config.get("AUTH_TOKEN_MAX_AGE_SECONDS", 3600)
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired API token")
        return None
    except BadSignature:
        current_app.logger.warning("Rejected API token with invalid signature")
        return None

    user_id = payload.get("uid") if isinstance(payload, dict) else None
    if not isinstance(user_id, int):
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def token_from_header(header_value):
    """Extract the token from an ``Authorization: Bearer ...`` header"""
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
