# Overview: Invoice lifecycle, payments and receipts for owners and payment-link holders.

"""
Invoice Service

OWNER OPERATIONS are scoped by (invoice_id, owner_id) exactly like quotes;
a foreign or missing invoice yields None.

PUBLIC OPERATIONS use the payment token alone.

PAYMENTS (owner "mark paid" and public "pay" share _record_payment):
- paid invoices are returned unchanged; no second receipt is issued
- without a schedule, a payment settles the given amount (default: the
  whole balance); the invoice becomes partially_paid or paid
- with a schedule, each payment settles the next unpaid installment in
  sequence order, and the invoice is paid once every installment is
- every payment issues one Receipt in the same transaction

The amount is written with a conditional UPDATE on the previously read
amount_paid_cents, so two concurrent payments cannot both apply against
the same balance: the loser sees rowcount 0 and the whole payment is
retried from a fresh read.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import (
    BusinessSettings,
    Invoice,
    PaymentInstallment,
    PaymentSchedule,
    Quote,
    Receipt,
    SecurityEvent,
)
from ..validation import (
    INVOICE_POLICY,
    INVOICE_TOKEN_POLICY,
    ValidationError,
    enforce_rules_amount,
    validate_payload,
)
from tradie.time_utils import utcnow, as_utc_naive, parse_iso_datetime
from . import line_item_service, receipt_service
from .capability_tokens import CapabilityToken
from .concurrency import conditional_update, lock_for_update, run_with_retry, INSERT_RACE_ERRORS
from .lifecycle_service import (
    LifecycleError,
    PAYABLE_INVOICE_STATUSES,
    require_transition,
)
from .security_service import log_security_event
from .sequence_service import next_document_number


PAYMENT_METHODS = {"bank_transfer", "cash", "card", "stripe", "other"}


class PaymentConflict(Exception):
    """Another payment changed the invoice between read and write."""
    pass


PAYMENT_RETRY_ERRORS = INSERT_RACE_ERRORS + (PaymentConflict,)


def _token_length() -> int:
    return current_app.config.get("CAPABILITY_TOKEN_LENGTH", 12)


# =============================================================================
# Owner-scoped reads
# =============================================================================

def list_invoices(owner_id: int, *, include_archived: bool = False, status: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.owner_id == owner_id)
    if not include_archived:
        query = query.filter(Invoice.archived_at.is_(None))
    if status:
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def get_invoice(invoice_id: int, owner_id: int) -> Invoice | None:
    return db.session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.owner_id == owner_id,
    ).first()


def invoice_detail(invoice: Invoice) -> dict:
    data = invoice.to_dict()
    data["line_items"] = [item.to_dict() for item in line_item_service.list_line_items(invoice)]
    schedule = _schedule_for(invoice.id)
    data["payment_schedule"] = schedule.to_dict() if schedule else None
    data["receipts"] = [
        r.to_dict() for r in receipt_service.list_receipts(invoice.owner_id, invoice_id=invoice.id)
    ]
    return data


def get_invoice_with_line_items(invoice_id: int, owner_id: int) -> dict | None:
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None
    return invoice_detail(invoice)


def _schedule_for(invoice_id: int) -> PaymentSchedule | None:
    return db.session.query(PaymentSchedule).filter_by(invoice_id=invoice_id).first()


# =============================================================================
# Owner-scoped writes
# =============================================================================

def create_invoice(owner_id: int, payload: dict, *, line_items: list[dict] | None = None) -> Invoice:
    """Create a draft invoice with a freshly allocated number."""
    patch = validate_payload(model=Invoice, payload=payload, policy=INVOICE_POLICY, partial=False)
    items = line_item_service.validate_line_items(line_items)

    def _op() -> Invoice:
        invoice = Invoice(
            owner_id=owner_id,
            number=next_document_number(owner_id=owner_id, document_type="invoice"),
            status="draft",
            **patch,
        )
        db.session.add(invoice)
        db.session.flush()

        line_item_service.add_line_items(invoice, items)
        db.session.commit()
        return invoice

    return run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)


def create_invoice_from_quote(quote_id: int, owner_id: int, *, due_date: datetime | None = None) -> Invoice | None:
    """
    Turn an accepted quote into a draft invoice carrying the same line items.

    Returns None if the quote is not the owner's; raises LifecycleError if it
    has not been accepted.
    """
    quote = db.session.query(Quote).filter(Quote.id == quote_id, Quote.owner_id == owner_id).first()
    if quote is None:
        return None
    if quote.status != "accepted":
        raise LifecycleError(f"Quote {quote.id} must be accepted before invoicing (is '{quote.status}')")

    items = [
        {
            "description": item.description,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
            "sort_order": item.sort_order,
        }
        for item in line_item_service.list_line_items(quote)
    ]

    def _op() -> Invoice:
        invoice = Invoice(
            owner_id=owner_id,
            client_id=quote.client_id,
            quote_id=quote.id,
            number=next_document_number(owner_id=owner_id, document_type="invoice"),
            title=quote.title,
            description=quote.description,
            notes=quote.notes,
            due_date=due_date,
            status="draft",
        )
        db.session.add(invoice)
        db.session.flush()

        line_item_service.add_line_items(invoice, items)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)
    current_app.logger.info("Invoice %s created from quote %s", invoice.id, quote_id)
    return invoice


def update_invoice(invoice_id: int, owner_id: int, payload: dict) -> Invoice | None:
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None

    patch = validate_payload(model=Invoice, payload=payload, policy=INVOICE_POLICY, partial=True)
    for key, value in patch.items():
        setattr(invoice, key, value)
    db.session.commit()
    return invoice


def archive_invoice(invoice_id: int, owner_id: int) -> Invoice | None:
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None
    if invoice.archived_at is None:
        invoice.archived_at = utcnow()
        db.session.commit()
    return invoice


def unarchive_invoice(invoice_id: int, owner_id: int) -> Invoice | None:
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None
    if invoice.archived_at is not None:
        invoice.archived_at = None
        db.session.commit()
    return invoice


def _delete_schedule(invoice_id: int) -> None:
    schedule = _schedule_for(invoice_id)
    if schedule is None:
        return
    db.session.query(PaymentInstallment).filter(PaymentInstallment.schedule_id == schedule.id).delete()
    db.session.query(PaymentSchedule).filter(PaymentSchedule.id == schedule.id).delete()


def delete_invoice(invoice_id: int, owner_id: int) -> bool:
    """
    Hard-delete an invoice with its line items and payment schedule.
    Receipts are kept and detached.
    """
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return False

    line_item_service.delete_line_items(invoice)
    _delete_schedule(invoice.id)
    receipt_service.detach_invoice_receipts(invoice.id)
    db.session.query(Invoice).filter(Invoice.id == invoice.id, Invoice.owner_id == owner_id).delete()
    db.session.commit()
    return True


def _assign_token(invoice: Invoice, **changes) -> CapabilityToken:
    def _op() -> CapabilityToken:
        token = CapabilityToken.generate(_token_length())
        for column, value in changes.items():
            setattr(invoice, column, value)
        invoice.payment_token = str(token)
        db.session.commit()
        return token

    return run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)


def mint_payment_token(invoice_id: int, owner_id: int) -> CapabilityToken | None:
    """Generate a new payment token, invalidating any previous one."""
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None
    return _assign_token(invoice)


def send_invoice(invoice_id: int, owner_id: int) -> tuple[Invoice, CapabilityToken] | None:
    """draft -> sent; ensures a payment token exists and returns it."""
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None

    require_transition("invoice", invoice.id, invoice.status, "sent")
    sent = {"status": "sent", "sent_at": utcnow()}
    if invoice.payment_token:
        for column, value in sent.items():
            setattr(invoice, column, value)
        db.session.commit()
        return invoice, CapabilityToken(invoice.payment_token)
    return invoice, _assign_token(invoice, **sent)


# =============================================================================
# Line items (owner)
# =============================================================================

def _require_editable_line_items(invoice: Invoice) -> None:
    # Installments must keep summing to total_cents
    if invoice.amount_paid_cents:
        raise LifecycleError(f"Invoice {invoice.id} has payments; line items are locked")
    if _schedule_for(invoice.id) is not None:
        raise LifecycleError(f"Invoice {invoice.id} has a payment schedule; remove it before changing line items")


def list_invoice_line_items(invoice_id: int, owner_id: int) -> list | None:
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None
    return line_item_service.list_line_items(invoice)


def add_invoice_line_item(invoice_id: int, owner_id: int, fields: dict):
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None
    if not isinstance(fields, dict):
        raise ValidationError("Invalid JSON payload")
    _require_editable_line_items(invoice)
    return line_item_service.add_line_item(
        invoice,
        description=fields.get("description"),
        quantity=fields.get("quantity", 1),
        unit_price_cents=fields.get("unit_price_cents"),
        sort_order=fields.get("sort_order"),
    )


def remove_invoice_line_item(invoice_id: int, owner_id: int, item_id: int) -> bool:
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return False
    _require_editable_line_items(invoice)
    return line_item_service.remove_line_item(invoice, item_id)


# =============================================================================
# Payment schedules
# =============================================================================

def _parse_installments(raw_installments) -> list[dict]:
    if not isinstance(raw_installments, list) or not raw_installments:
        raise ValidationError("installments must be a non-empty list")

    parsed = []
    for index, raw in enumerate(raw_installments, start=1):
        if not isinstance(raw, dict):
            raise ValidationError("Each installment must be an object")
        amount = enforce_rules_amount(raw.get("amount_cents"), field="amount_cents")
        if amount == 0:
            raise ValidationError("amount_cents must be > 0")
        due_date = raw.get("due_date")
        if due_date is not None:
            if not isinstance(due_date, str):
                raise ValidationError("due_date must be an ISO-8601 datetime")
            try:
                due_date = parse_iso_datetime(due_date)
            except ValueError:
                raise ValidationError("due_date must be an ISO-8601 datetime")
        parsed.append({"sequence": index, "amount_cents": amount, "due_date": due_date})
    return parsed


def attach_payment_schedule(invoice_id: int, owner_id: int, installments) -> PaymentSchedule | None:
    """
    Attach (or replace) an installment plan.

    Installments must sum to the invoice total, and the plan can only be
    changed before any payment has been recorded.
    """
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return None

    parsed = _parse_installments(installments)
    total = sum(i["amount_cents"] for i in parsed)
    if total != invoice.total_cents:
        raise ValidationError(
            f"Installments total {total} must equal the invoice total {invoice.total_cents}"
        )
    if invoice.amount_paid_cents or invoice.status == "paid":
        raise LifecycleError(f"Invoice {invoice.id} already has payments; the schedule is fixed")

    _delete_schedule(invoice.id)
    schedule = PaymentSchedule(invoice_id=invoice.id)
    db.session.add(schedule)
    db.session.flush()
    for item in parsed:
        db.session.add(PaymentInstallment(schedule_id=schedule.id, **item))
    db.session.commit()
    return schedule


def detach_payment_schedule(invoice_id: int, owner_id: int) -> bool:
    """Remove the installment plan. Only allowed before any payment."""
    invoice = get_invoice(invoice_id, owner_id)
    if invoice is None:
        return False
    if invoice.amount_paid_cents or invoice.status == "paid":
        raise LifecycleError(f"Invoice {invoice.id} already has payments; the schedule is fixed")
    _delete_schedule(invoice.id)
    db.session.commit()
    return True


# =============================================================================
# Payments
# =============================================================================

def _next_unpaid_installment(invoice_id: int) -> PaymentInstallment | None:
    schedule = _schedule_for(invoice_id)
    if schedule is None:
        return None
    return (
        db.session.query(PaymentInstallment)
        .filter(PaymentInstallment.schedule_id == schedule.id, PaymentInstallment.paid_at.is_(None))
        .order_by(PaymentInstallment.sequence.asc())
        .first()
    )


def _record_payment(
    invoice_query,
    *,
    amount_cents: int | None,
    payment_method: str | None,
    payment_reference: str | None,
) -> tuple[Invoice, Receipt | None] | None:
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")
    if amount_cents is not None:
        enforce_rules_amount(amount_cents, field="amount_cents")
    if payment_reference is not None:
        payment_reference = str(payment_reference).strip()[:255] or None

    def _op() -> tuple[Invoice, Receipt | None] | None:
        invoice = lock_for_update(invoice_query()).first()
        if invoice is None:
            return None
        if invoice.status == "paid":
            return invoice, None
        if invoice.status not in PAYABLE_INVOICE_STATUSES:
            raise LifecycleError(f"Invoice {invoice.id} is '{invoice.status}' and cannot take payments")

        installment = _next_unpaid_installment(invoice.id)
        if installment is not None:
            if amount_cents is not None and amount_cents != installment.amount_cents:
                raise ValidationError(
                    f"Payment must match installment {installment.sequence} ({installment.amount_cents} cents)"
                )
            amount = installment.amount_cents
            if amount > invoice.balance_cents:
                raise ValidationError(f"Installment {installment.sequence} exceeds the balance of {invoice.balance_cents} cents")
        else:
            amount = invoice.balance_cents if amount_cents is None else amount_cents
            if amount > invoice.balance_cents:
                raise ValidationError(f"Payment exceeds the balance of {invoice.balance_cents} cents")
            if amount == 0 and invoice.balance_cents > 0:
                raise ValidationError("amount_cents must be > 0")

        previous_paid = invoice.amount_paid_cents or 0
        new_paid = previous_paid + amount
        now = utcnow()

        if installment is not None:
            installment.paid_at = now
            installment.payment_reference = payment_reference
            db.session.flush()
        fully_paid = new_paid >= (invoice.total_cents or 0)

        new_status = "paid" if fully_paid else "partially_paid"
        if new_status != invoice.status:
            require_transition("invoice", invoice.id, invoice.status, new_status)

        values = {
            "amount_paid_cents": new_paid,
            "status": new_status,
            "updated_at": now,
        }
        if fully_paid:
            values["paid_at"] = now
        if payment_method is not None:
            values["payment_method"] = payment_method
        if payment_reference is not None:
            values["payment_reference"] = payment_reference

        applied = conditional_update(
            Invoice,
            (Invoice.id == invoice.id, Invoice.amount_paid_cents == previous_paid),
            values,
        )
        if applied != 1:
            raise PaymentConflict(f"Invoice {invoice.id} changed during payment")

        receipt = receipt_service.issue_receipt(
            invoice,
            amount_cents=amount,
            payment_method=payment_method,
            payment_reference=payment_reference,
            paid_at=now,
        )
        db.session.commit()
        db.session.refresh(invoice)
        return invoice, receipt

    return run_with_retry(_op, retry_on=PAYMENT_RETRY_ERRORS)


def mark_invoice_paid(
    invoice_id: int,
    owner_id: int,
    *,
    amount_cents: int | None = None,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> tuple[Invoice, Receipt | None] | None:
    """Owner records a manual payment (cash, bank transfer)."""
    return _record_payment(
        lambda: db.session.query(Invoice).filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id),
        amount_cents=amount_cents,
        payment_method=payment_method,
        payment_reference=payment_reference,
    )


def mark_overdue_invoices(now: datetime | None = None) -> int:
    """
    sent / partially_paid invoices whose due date has passed become overdue.

    Returns count of invoices updated. Safe to run repeatedly.
    """
    now = as_utc_naive(now) if now else utcnow()
    updated = db.session.query(Invoice).filter(
        Invoice.status.in_(("sent", "partially_paid")),
        Invoice.due_date.isnot(None),
        Invoice.due_date < now,
    ).update({"status": "overdue", "updated_at": now}, synchronize_session=False)
    db.session.commit()
    return updated


# =============================================================================
# Public (capability token)
# =============================================================================

def get_invoice_by_token(raw_token) -> Invoice | None:
    token = CapabilityToken.parse(raw_token)
    if token is None:
        return None
    return db.session.query(Invoice).filter(Invoice.payment_token == str(token)).first()


def public_invoice_view(invoice: Invoice) -> dict:
    data = invoice_detail(invoice)
    for key in ("owner_id", "client_id", "quote_id", "has_payment_token"):
        data.pop(key, None)
    for receipt in data["receipts"]:
        receipt.pop("owner_id", None)
    settings = db.session.query(BusinessSettings).filter_by(owner_id=invoice.owner_id).first()
    data["business_name"] = settings.business_name if settings else None
    return data


def pay_invoice_by_token(
    raw_token,
    *,
    amount_cents: int | None = None,
    payment_method: str | None = None,
    payment_reference: str | None = None,
    source_ip: str | None = None,
    user_agent: str | None = None,
) -> tuple[Invoice, Receipt | None] | None:
    """
    Record a payment confirmed by the payment collaborator (or the client
    paying through the link). Returns None for unknown tokens.
    """
    token = CapabilityToken.parse(raw_token)
    if token is None:
        return None

    outcome = _record_payment(
        lambda: db.session.query(Invoice).filter(Invoice.payment_token == str(token)),
        amount_cents=amount_cents,
        payment_method=payment_method,
        payment_reference=payment_reference,
    )
    if outcome is None:
        return None

    invoice, receipt = outcome
    if receipt is not None:
        log_security_event(
            account_id=invoice.owner_id,
            event_type="INVOICE_PAID",
            success=True,
            resource=SecurityEvent.resource_key("invoice", invoice.id),
            action="pay",
            ip_address=source_ip,
            user_agent=user_agent,
        )
        current_app.logger.info(
            "Invoice %s payment of %s cents recorded via public link", invoice.id, receipt.amount_cents
        )
    return outcome


def update_invoice_by_token(raw_token, fields: dict) -> Invoice | None:
    """Patch payment bookkeeping fields listed in INVOICE_TOKEN_POLICY."""
    patch = validate_payload(model=Invoice, payload=fields, policy=INVOICE_TOKEN_POLICY, partial=True)
    if patch.get("payment_method") is not None and patch["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")

    invoice = get_invoice_by_token(raw_token)
    if invoice is None:
        return None
    for key, value in patch.items():
        setattr(invoice, key, value)
    db.session.commit()
    return invoice
