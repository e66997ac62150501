# Overview: Pytest coverage for owner session issue, validation and revocation.

from datetime import timedelta

import pytest

from tradie.models import SessionToken
from tradie.services import session_service
from tradie.time_utils import utcnow


class TestSessions:

    def test_token_is_stored_hashed(self, db_session, owner_a):
        session, token = session_service.create_session(owner_a.id)

        assert session.token_hash == session_service.hash_token(token)
        assert db_session.query(SessionToken).filter_by(token_hash=token).first() is None

    def test_validate_returns_owner_scope(self, db_session, owner_a):
        _, token = session_service.create_session(owner_a.id)

        context = session_service.validate_session(token)

        assert context.owner_id == owner_a.id
        assert context.account.email == owner_a.email

    def test_unknown_token_is_rejected(self, db_session, owner_a):
        assert session_service.validate_session("not-a-token") is None
        assert session_service.validate_session("") is None

    def test_idle_session_is_revoked(self, app, db_session, owner_a, monkeypatch):
        session, token = session_service.create_session(owner_a.id)
        later = utcnow() + timedelta(minutes=app.config["SESSION_IDLE_MINUTES"] + 1)
        monkeypatch.setattr("tradie.services.session_service.utcnow", lambda: later)

        assert session_service.validate_session(token) is None
        db_session.refresh(session)
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_absolute_lifetime_is_enforced(self, app, db_session, owner_a, monkeypatch):
        monkeypatch.setitem(app.config, "SESSION_ABSOLUTE_HOURS", 1)
        monkeypatch.setitem(app.config, "SESSION_IDLE_MINUTES", 600)
        _, token = session_service.create_session(owner_a.id)
        later = utcnow() + timedelta(hours=2)
        monkeypatch.setattr("tradie.services.session_service.utcnow", lambda: later)

        assert session_service.validate_session(token) is None

    def test_deactivated_account_loses_sessions(self, db_session, owner_a):
        _, token = session_service.create_session(owner_a.id)
        owner_a.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None
        with pytest.raises(ValueError):
            session_service.create_session(owner_a.id)

    def test_revoke_all_only_touches_one_account(self, db_session, owner_a, owner_b):
        _, first = session_service.create_session(owner_a.id)
        _, second = session_service.create_session(owner_a.id)
        _, other = session_service.create_session(owner_b.id)

        assert session_service.revoke_all_account_sessions(owner_a.id) == 2

        assert session_service.validate_session(first) is None
        assert session_service.validate_session(second) is None
        assert session_service.validate_session(other) is not None

    def test_cleanup_removes_old_revoked_sessions(self, db_session, owner_a):
        session, token = session_service.create_session(owner_a.id)
        session_service.revoke_session(token)
        session.created_at = utcnow() - timedelta(days=40)
        db_session.commit()

        assert session_service.cleanup_expired_sessions(retention_days=30) == 1
        assert db_session.query(SessionToken).count() == 0
