from __future__ import annotations

from ..extensions import db
from tradie.time_utils import to_utc_z


class BusinessSettings(db.Model):
    """
    Per-owner business profile.

    Only the numbering prefixes and GST registration matter to the document
    core; everything else about the business lives with the settings screens.
    """
    __tablename__ = "business_settings"
    __table_args__ = (
        db.UniqueConstraint("owner_id", name="uq_business_settings_owner"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    business_name = db.Column(db.String(255), nullable=False)

    # Null falls back to the document type's default prefix
    quote_prefix = db.Column(db.String(16), nullable=True)
    invoice_prefix = db.Column(db.String(16), nullable=True)

    gst_registered = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("Account", backref=db.backref("business_settings", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "business_name": self.business_name,
            "quote_prefix": self.quote_prefix,
            "invoice_prefix": self.invoice_prefix,
            "gst_registered": self.gst_registered,
            "updated_at": to_utc_z(self.updated_at),
        }
