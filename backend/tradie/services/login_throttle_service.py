# Overview: Lockout after repeated failed sign-ins for one email.

"""
Email Sign-in Throttling Service

WHY: A 6-digit code has only a million values. Without a cap on guesses a
script could walk the space inside the code's validity window.

Failures are not stored separately: they are the LOGIN_CODE_FAILED,
LOGIN_CODE_EXPIRED and LOGIN_FAILED rows of the security_events table,
keyed by the normalized email in the 'action' column. Code and password
failures share one budget per email.

Limits (app config):
- LOGIN_MAX_FAILED_ATTEMPTS failures within LOGIN_LOCKOUT_WINDOW_MINUTES lock
- the lock lasts LOGIN_LOCKOUT_MINUTES from the latest failure
- a successful sign-in resets the count
"""

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from tradie.time_utils import utcnow, as_utc_naive
from .security_service import log_security_event


FAILURE_EVENT_TYPES = ("LOGIN_CODE_FAILED", "LOGIN_CODE_EXPIRED", "LOGIN_FAILED")


def max_failed_attempts() -> int:
    return current_app.config.get("LOGIN_MAX_FAILED_ATTEMPTS", 5)


def _window() -> timedelta:
    return timedelta(minutes=current_app.config.get("LOGIN_LOCKOUT_WINDOW_MINUTES", 15))


def _lockout() -> timedelta:
    return timedelta(minutes=current_app.config.get("LOGIN_LOCKOUT_MINUTES", 15))


def _events_for(email: str, *event_types: str):
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type.in_(event_types),
        SecurityEvent.action == email,
    )


def _latest_at(email: str, *event_types: str):
    event = _events_for(email, *event_types).order_by(SecurityEvent.occurred_at.desc()).first()
    return as_utc_naive(event.occurred_at) if event else None


def get_recent_failed_attempts(email: str) -> int:
    """Failures inside the window that happened after the last successful sign-in."""
    cutoff = utcnow() - _window()
    last_success = _latest_at(email, "LOGIN_SUCCESS")
    if last_success and last_success > cutoff:
        cutoff = last_success

    return _events_for(email, *FAILURE_EVENT_TYPES).filter(SecurityEvent.occurred_at > cutoff).count()


def is_email_locked(email: str) -> tuple[bool, int | None]:
    """(True, seconds_remaining) while locked, else (False, None)."""
    if get_recent_failed_attempts(email) < max_failed_attempts():
        return False, None

    latest_failure = _latest_at(email, *FAILURE_EVENT_TYPES)
    now = utcnow()
    if latest_failure and now < latest_failure + _lockout():
        return True, int((latest_failure + _lockout() - now).total_seconds())
    return False, None


def get_lockout_status(email: str) -> dict:
    is_locked, seconds_remaining = is_email_locked(email)
    return {
        "locked": is_locked,
        "failed_attempts": get_recent_failed_attempts(email),
        "max_attempts": max_failed_attempts(),
        "seconds_until_unlock": seconds_remaining,
        "lockout_window_minutes": int(_window().total_seconds() // 60),
        "lockout_duration_minutes": int(_lockout().total_seconds() // 60),
    }


def record_failed_attempt(
    email: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials",
) -> int:
    """Record a failed password sign-in. Returns the updated failure count."""
    log_security_event(
        account_id=None,
        event_type="LOGIN_FAILED",
        success=False,
        resource="password",
        action=email,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return get_recent_failed_attempts(email)


def record_successful_login(
    account_id: int,
    email: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    log_security_event(
        account_id=account_id,
        event_type="LOGIN_SUCCESS",
        success=True,
        resource="password",
        action=email,
        ip_address=ip_address,
        user_agent=user_agent,
    )
