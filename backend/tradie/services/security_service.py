# Overview: Append-only security audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from tradie.time_utils import utcnow
from .concurrency import run_with_retry


def mask_email(email: str | None) -> str:
    """a.person@example.com -> a***@example.com (for log lines)."""
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


def log_security_event(
    account_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    Commits on its own, so it must be called after the business transaction
    has committed or rolled back.

    event_type examples:
    - LOGIN_CODE_REQUESTED
    - LOGIN_CODE_FAILED
    - LOGIN_CODE_EXPIRED
    - LOGIN_SUCCESS
    - LOGIN_FAILED
    - QUOTE_ACCEPTED / QUOTE_DECLINED
    - INVOICE_PAID
    """
    def _op() -> SecurityEvent:
        event = SecurityEvent(
            account_id=account_id,
            event_type=event_type,
            resource=resource,
            action=action,
            success=success,
            reason=reason,
            ip_address=ip_address,
            user_agent=user_agent,
            occurred_at=utcnow(),
        )
        db.session.add(event)
        db.session.commit()
        return event

    return run_with_retry(_op)
