# Overview: Periodic cleanup jobs run from the CLI (cron).

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from tradie.time_utils import utcnow
from . import auth_service, invoice_service, session_service


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def run_all(*, session_retention_days: int = 30, event_retention_days: int = 90) -> dict:
    """Every periodic job in one pass; returns counts per job."""
    return {
        "login_codes_swept": auth_service.sweep_expired(),
        "sessions_deleted": session_service.cleanup_expired_sessions(retention_days=session_retention_days),
        "invoices_marked_overdue": invoice_service.mark_overdue_invoices(),
        "security_events_deleted": cleanup_security_events(retention_days=event_retention_days),
    }
