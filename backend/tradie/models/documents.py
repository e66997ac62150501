from __future__ import annotations

from ..extensions import db
from tradie.time_utils import to_utc_z


class Quote(db.Model):
    """
    Quote document sent to a client for acceptance.

    STATE MACHINE: draft -> sent -> {accepted, declined}
    archived_at is an orthogonal flag toggled by archive/unarchive.

    acceptance_token is the capability credential for the public quote page.
    It is unique across all owners and never derived from the id.
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "number", name="uq_quotes_owner_number"),
        db.UniqueConstraint("acceptance_token", name="uq_quotes_acceptance_token"),
        db.Index("ix_quotes_owner_archived", "owner_id", "archived_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # Owned by the client directory; not enforced here
    client_id = db.Column(db.Integer, nullable=True, index=True)

    # Human-readable number (e.g., "QT-2025-001-7K2Q")
    number = db.Column(db.String(64), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    # Totals in cents, recomputed from line items
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Public acceptance
    acceptance_token = db.Column(db.String(64), nullable=True)
    accepted_by = db.Column(db.String(255), nullable=True)
    acceptance_ip = db.Column(db.String(45), nullable=True)
    decline_reason = db.Column(db.Text, nullable=True)

    # Deposit tracking (patched by the payment collaborator via token)
    deposit_required = db.Column(db.Boolean, nullable=False, default=False)
    deposit_percent_bps = db.Column(db.Integer, nullable=True)
    deposit_paid = db.Column(db.Boolean, nullable=False, default=False)
    deposit_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deposit_payment_intent_id = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("Account", backref=db.backref("quotes", lazy=True))

    def to_dict(self) -> dict:
        # acceptance_token is deliberately absent; it is returned only when minted
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "client_id": self.client_id,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "notes": self.notes,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "gst_cents": self.gst_cents,
            "total_cents": self.total_cents,
            "valid_until": to_utc_z(self.valid_until),
            "sent_at": to_utc_z(self.sent_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "archived_at": to_utc_z(self.archived_at),
            "accepted_by": self.accepted_by,
            "decline_reason": self.decline_reason,
            "has_acceptance_token": self.acceptance_token is not None,
            "deposit_required": self.deposit_required,
            "deposit_percent_bps": self.deposit_percent_bps,
            "deposit_paid": self.deposit_paid,
            "deposit_paid_at": to_utc_z(self.deposit_paid_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class QuoteLineItem(db.Model):
    """Quote line; quantity is decimal (hours, metres), prices in cents."""
    __tablename__ = "quote_line_items"
    __table_args__ = (
        db.Index("ix_quote_line_items_quote_sort", "quote_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    quote = db.relationship("Quote", backref=db.backref("line_items", lazy=True, order_by="QuoteLineItem.sort_order"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "sort_order": self.sort_order,
        }


class DigitalSignature(db.Model):
    """Client signature captured when a quote is accepted through its public link."""
    __tablename__ = "digital_signatures"
    __table_args__ = (
        db.UniqueConstraint("quote_id", name="uq_digital_signatures_quote"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=False, index=True)
    signer_name = db.Column(db.String(255), nullable=False)
    # Data URL of the drawn signature
    signature_data = db.Column(db.Text, nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    signed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    quote = db.relationship("Quote", backref=db.backref("signature", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "signer_name": self.signer_name,
            "signed_at": to_utc_z(self.signed_at),
        }


class Invoice(db.Model):
    """
    Invoice document.

    STATE MACHINE: draft -> sent -> {partially_paid, paid, overdue}
                   partially_paid -> {paid, overdue}, overdue -> paid
    archived_at is an orthogonal flag toggled by archive/unarchive.

    payment_token is the capability credential for the public payment page.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "number", name="uq_invoices_owner_number"),
        db.UniqueConstraint("payment_token", name="uq_invoices_payment_token"),
        db.Index("ix_invoices_owner_archived", "owner_id", "archived_at"),
        db.Index("ix_invoices_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=True, index=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True, index=True)

    number = db.Column(db.String(64), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Payment tracking
    payment_method = db.Column(db.String(32), nullable=True)  # bank_transfer, cash, card, stripe
    payment_reference = db.Column(db.String(255), nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)
    allow_online_payment = db.Column(db.Boolean, nullable=False, default=False)
    payment_token = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("Account", backref=db.backref("invoices", lazy=True))
    quote = db.relationship("Quote", backref=db.backref("invoices", lazy=True))

    @property
    def balance_cents(self) -> int:
        return max((self.total_cents or 0) - (self.amount_paid_cents or 0), 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "client_id": self.client_id,
            "quote_id": self.quote_id,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "notes": self.notes,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "gst_cents": self.gst_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_cents": self.balance_cents,
            "due_date": to_utc_z(self.due_date),
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "archived_at": to_utc_z(self.archived_at),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "allow_online_payment": self.allow_online_payment,
            "has_payment_token": self.payment_token is not None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceLineItem(db.Model):
    __tablename__ = "invoice_line_items"
    __table_args__ = (
        db.Index("ix_invoice_line_items_invoice_sort", "invoice_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("line_items", lazy=True, order_by="InvoiceLineItem.sort_order"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "sort_order": self.sort_order,
        }


class PaymentSchedule(db.Model):
    """Installment plan attached to an invoice (at most one per invoice)."""
    __tablename__ = "payment_schedules"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", name="uq_payment_schedules_invoice"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("payment_schedule", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "installments": [i.to_dict() for i in self.installments],
            "created_at": to_utc_z(self.created_at),
        }


class PaymentInstallment(db.Model):
    __tablename__ = "payment_installments"
    __table_args__ = (
        db.UniqueConstraint("schedule_id", "sequence", name="uq_payment_installments_schedule_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey("payment_schedules.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_reference = db.Column(db.String(255), nullable=True)

    schedule = db.relationship(
        "PaymentSchedule",
        backref=db.backref("installments", lazy=True, order_by="PaymentInstallment.sequence"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "amount_cents": self.amount_cents,
            "due_date": to_utc_z(self.due_date),
            "paid_at": to_utc_z(self.paid_at),
            "payment_reference": self.payment_reference,
        }


class Receipt(db.Model):
    """Proof of a single payment against an invoice."""
    __tablename__ = "receipts"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "receipt_number", name="uq_receipts_owner_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    # Detached (set null) when the invoice is deleted; receipts are kept
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    receipt_number = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_reference = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("receipts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "invoice_id": self.invoice_id,
            "receipt_number": self.receipt_number,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "paid_at": to_utc_z(self.paid_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-owner, per-type, per-year document counters.

    WHY: Two concurrent creations must never compute the same ordinal.
    next_number is advanced with a single UPDATE ... SET next_number =
    next_number + 1, which the store serializes on the row.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "document_type", "year", name="uq_doc_sequences_owner_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    document_type = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "document_type": self.document_type,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
