from __future__ import annotations

from ..extensions import db
from tradie.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Append-only audit row for sign-in attempts and public link actions.

    Sign-in events carry the normalized email in 'action' so the lockout
    logic can count failures for addresses that have no account yet.
    Document events carry "<kind>:<id>" in 'resource'.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_account_type", "account_id", "event_type"),
        db.Index("ix_security_events_type_action", "event_type", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)

    # LOGIN_CODE_REQUESTED, LOGIN_CODE_FAILED, LOGIN_CODE_EXPIRED, LOGIN_SUCCESS,
    # LOGIN_FAILED, QUOTE_ACCEPTED, QUOTE_DECLINED, INVOICE_PAID
    event_type = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(255), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    account = db.relationship("Account", backref=db.backref("security_events", lazy=True))

    @staticmethod
    def resource_key(kind: str, document_id: int) -> str:
        return f"{kind}:{document_id}"

    @classmethod
    def for_document(cls, kind: str, document_id: int):
        """Query of events recorded against one quote or invoice, oldest first."""
        return db.session.query(cls).filter(
            cls.resource == cls.resource_key(kind, document_id)
        ).order_by(cls.occurred_at, cls.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
