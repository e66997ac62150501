# Overview: Owner sessions issued after sign-in; supplies owner_id to authenticated routes.

"""
Owner Sessions

A login code (or password) proves control of an email once. After that the
client holds an opaque bearer token, and the session row behind it supplies
the owner_id that scopes every owner document operation.

- The client gets 32 random bytes as hex; only the SHA-256 digest is stored
- A session ends at its absolute expiry, after an idle gap, on logout, or
  when the account is deactivated
- User agent and IP are kept for the owner's "where am I signed in" view
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Account, SessionToken
from tradie.time_utils import utcnow, as_utc_naive, has_expired


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", 120))


@dataclass
class SessionContext:
    account: Account
    session: SessionToken
    owner_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Digest stored in place of the token. A fast hash is fine: tokens carry 256 bits."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _active_session(token: str) -> SessionToken | None:
    if not token:
        return None
    return db.session.query(SessionToken).filter(
        SessionToken.token_hash == hash_token(token),
        SessionToken.is_revoked.is_(False),
    ).first()


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def create_session(
    account_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for an active account.

    Returns (session_row, token). The token is only ever in the return value;
    the row keeps its digest. Raises ValueError for a missing or deactivated
    account.
    """
    account = db.session.get(Account, account_id)
    if account is None:
        raise ValueError("Account not found")
    if not account.is_active:
        raise ValueError("Account is not active")

    token = generate_token()
    opened_at = utcnow()
    session = SessionToken(
        account_id=account_id,
        token_hash=hash_token(token),
        created_at=opened_at,
        last_used_at=opened_at,
        expires_at=opened_at + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its owner, or None.

    Idle sessions and sessions of deactivated accounts are revoked on the
    way out; a session past its absolute expiry is simply refused. A valid
    session has last_used_at bumped.
    """
    session = _active_session(token)
    if session is None:
        return None

    now = utcnow()
    if has_expired(session.expires_at, now):
        return None
    if now - as_utc_naive(session.last_used_at) > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    account = session.account
    if account is None or not account.is_active:
        _revoke(session, "Account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(account=account, session=session, owner_id=account.id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token matches no live session."""
    session = _active_session(token)
    if session is None:
        return False
    _revoke(session, reason)
    return True


def revoke_all_account_sessions(account_id: int, reason: str = "Revoke all sessions") -> int:
    revoked = db.session.query(SessionToken).filter(
        SessionToken.account_id == account_id,
        SessionToken.is_revoked.is_(False),
    ).update(
        {"is_revoked": True, "revoked_at": utcnow(), "revoked_reason": reason},
        synchronize_session=False,
    )
    db.session.commit()
    return revoked


def cleanup_expired_sessions(*, retention_days: int = 30) -> int:
    """
    Delete sessions that are expired or revoked and were opened more than
    retention_days ago. Driven by `flask maintenance cleanup-sessions`.
    """
    now = utcnow()
    dead = db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True))
    removed = db.session.query(SessionToken).filter(
        dead,
        SessionToken.created_at < now - timedelta(days=retention_days),
    ).delete(synchronize_session=False)
    db.session.commit()
    return removed
