# Overview: Liveness and version endpoints for deployment checks.

# backend/tradie/routes/system.py
"""
System API routes

GET /health reports two checks:
- database: the store answers a query
- maintenance: rows the periodic sweeps should already have cleared
  (expired sign-in codes, stale sessions, invoices past due still "sent").
  A backlog means the cron job is not running; it degrades, never fails.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Account, Invoice, OneTimeCode, Quote, SessionToken
from ..services.lifecycle_service import PAYABLE_INVOICE_STATUSES
from tradie.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def _timed(name: str, check) -> dict:
    start = time.perf_counter()
    try:
        status, details = check()
        result = {"status": status, "details": details}
    except Exception:
        current_app.logger.exception("Health check '%s' failed", name)
        result = {"status": "unhealthy", "error": f"{name} check error"}
    result["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
    return result


def _database_check():
    return "healthy", {
        "accounts": db.session.query(Account).count(),
        "quotes": db.session.query(Quote).count(),
        "invoices": db.session.query(Invoice).count(),
    }


def _maintenance_check():
    now = utcnow()
    details = {
        "expired_login_codes": db.session.query(OneTimeCode).filter(OneTimeCode.expires_at < now).count(),
        "expired_sessions_pending_cleanup": db.session.query(SessionToken).filter(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(False),
        ).count(),
        "invoices_pending_overdue": db.session.query(Invoice).filter(
            Invoice.status.in_(sorted(PAYABLE_INVOICE_STATUSES - {"overdue"})),
            Invoice.due_date.isnot(None),
            Invoice.due_date < now,
        ).count(),
    }
    backlog = details["expired_login_codes"] or details["invoices_pending_overdue"]
    return ("degraded" if backlog else "healthy"), details


@system_bp.get("/health")
def health():
    """200 when healthy or degraded, 503 when any check is unhealthy."""
    start = time.perf_counter()
    checks = {
        "database": _timed("database", _database_check),
        "maintenance": _timed("maintenance", _maintenance_check),
    }

    statuses = {check["status"] for check in checks.values()}
    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.perf_counter() - start) * 1000, 2),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    """Build info only; no keys, credentials or paths."""
    return {
        "api_version": "0.1.0",
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
