# Overview: Receipts issued for invoice payments.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Invoice, Receipt
from tradie.time_utils import utcnow
from .sequence_service import next_document_number


def issue_receipt(
    invoice: Invoice,
    *,
    amount_cents: int,
    payment_method: str | None = None,
    payment_reference: str | None = None,
    paid_at: datetime | None = None,
) -> Receipt:
    """
    Record one payment against an invoice.

    The receipt number comes from the owner's "receipt" sequence. Does not
    commit; the payment transaction that calls this owns the boundary.
    """
    receipt = Receipt(
        owner_id=invoice.owner_id,
        invoice_id=invoice.id,
        receipt_number=next_document_number(owner_id=invoice.owner_id, document_type="receipt"),
        amount_cents=amount_cents,
        payment_method=payment_method,
        payment_reference=payment_reference,
        paid_at=paid_at or utcnow(),
    )
    db.session.add(receipt)
    db.session.flush()
    return receipt


def list_receipts(owner_id: int, *, invoice_id: int | None = None) -> list[Receipt]:
    query = db.session.query(Receipt).filter(Receipt.owner_id == owner_id)
    if invoice_id is not None:
        query = query.filter(Receipt.invoice_id == invoice_id)
    return query.order_by(Receipt.paid_at.asc(), Receipt.id.asc()).all()


def detach_invoice_receipts(invoice_id: int) -> int:
    """Keep receipts when their invoice is deleted. Does not commit."""
    return db.session.query(Receipt).filter(Receipt.invoice_id == invoice_id).update(
        {"invoice_id": None}, synchronize_session=False
    )
