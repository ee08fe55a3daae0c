# planivo/utils/rate_limit.py

from datetime import timedelta, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from planivo.models import RateLimit, db
from planivo.models.base import utcnow


def _as_utc(value):
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _bump(identifier, action_type, window_seconds, now):
    window_floor = now - timedelta(seconds=window_seconds)
    entry = RateLimit.query.filter_by(identifier=identifier, action_type=action_type).first()
    if entry is None:
        entry = RateLimit(identifier=identifier, action_type=action_type, request_count=1, window_start=now)
        db.session.add(entry)
    elif _as_utc(entry.window_start) < window_floor:
        entry.request_count = 1
        entry.window_start = now
    else:
        entry.request_count += 1
    db.session.commit()
    return entry


def check_rate_limit(identifier, action_type, max_requests, window_seconds, now=None):
    """
    Count one request against a fixed window and report whether it is allowed.

    Args:
        identifier: caller key (user id, email)
        action_type: bucket name such as ``bulk_user_upload``
        max_requests: requests allowed per window
        window_seconds: window length

    Returns:
        tuple: (allowed, retry_after_seconds). The limiter fails open when the
        database is unavailable.
    """
    now = now or utcnow()
    identifier = str(identifier)
    try:
        try:
            entry = _bump(identifier, action_type, window_seconds, now)
        except IntegrityError:
            # Concurrent first request inserted the row; count against it
            db.session.rollback()
            entry = _bump(identifier, action_type, window_seconds, now)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Rate limit check failed for {action_type}:{identifier}: {str(e)}")
        return True, None

    if entry.request_count <= max_requests:
        return True, None

    elapsed = (now - _as_utc(entry.window_start)).total_seconds()
    retry_after = max(int(window_seconds - elapsed), 1)
    current_app.logger.warning(
        f"Rate limit exceeded for {action_type}:{identifier} ({entry.request_count}/{max_requests})"
    )
    return False, retry_after
