# Overview: Line items and totals for quotes and invoices.

"""
Line items belong to exactly one quote or invoice. Callers resolve the
parent document through its owner-scoped getter first; functions here take
the already-authorized document.

TOTALS (all integer cents):
    line total = round(quantity * unit_price_cents)   (half up)
    subtotal   = sum(line totals)
    gst        = round(subtotal * GST_RATE_BPS / 10000) if the owner is GST registered
    total      = subtotal + gst

Totals are recomputed and stored on the document after every line item
change, so listings never aggregate on read.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import BusinessSettings, Invoice, InvoiceLineItem, Quote, QuoteLineItem
from ..validation import MAX_SORT_ORDER, ValidationError, enforce_rules_line_item


def _item_model(document):
    if isinstance(document, Quote):
        return QuoteLineItem, QuoteLineItem.quote_id, "quote_id"
    if isinstance(document, Invoice):
        return InvoiceLineItem, InvoiceLineItem.invoice_id, "invoice_id"
    raise TypeError(f"Line items are not supported for {type(document).__name__}")


def line_total_cents(quantity: Decimal, unit_price_cents: int) -> int:
    return int((Decimal(quantity) * unit_price_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def gst_cents_for(owner_id: int, subtotal_cents: int) -> int:
    settings = db.session.query(BusinessSettings).filter_by(owner_id=owner_id).first()
    if settings is not None and not settings.gst_registered:
        return 0
    rate_bps = current_app.config.get("GST_RATE_BPS", 1000)
    return int((Decimal(subtotal_cents) * rate_bps / 10000).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def list_line_items(document) -> list:
    model, parent_col, _ = _item_model(document)
    return (
        db.session.query(model)
        .filter(parent_col == document.id)
        .order_by(model.sort_order.asc(), model.id.asc())
        .all()
    )


def recompute_totals(document) -> None:
    """Refresh subtotal/gst/total on the document. Does not commit."""
    subtotal = sum(item.total_cents for item in list_line_items(document))
    gst = gst_cents_for(document.owner_id, subtotal)
    document.subtotal_cents = subtotal
    document.gst_cents = gst
    document.total_cents = subtotal + gst


def _next_sort_order(document) -> int:
    model, parent_col, _ = _item_model(document)
    current = db.session.query(db.func.max(model.sort_order)).filter(parent_col == document.id).scalar()
    if current is None:
        return 0
    return min(current + 1, MAX_SORT_ORDER)


def add_line_item(
    document,
    *,
    description,
    quantity,
    unit_price_cents,
    sort_order=None,
    commit: bool = True,
):
    """
    Validate and append a line item, then refresh the document totals.

    Raises ValidationError before anything is written.
    """
    fields = enforce_rules_line_item(
        description=description,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        sort_order=sort_order,
    )
    if fields["sort_order"] is None:
        fields["sort_order"] = _next_sort_order(document)

    model, _, parent_key = _item_model(document)
    item = model(
        **{parent_key: document.id},
        description=fields["description"],
        quantity=fields["quantity"],
        unit_price_cents=fields["unit_price_cents"],
        total_cents=line_total_cents(fields["quantity"], fields["unit_price_cents"]),
        sort_order=fields["sort_order"],
    )
    db.session.add(item)
    db.session.flush()

    recompute_totals(document)
    if commit:
        db.session.commit()
    return item


def validate_line_items(items) -> list[dict]:
    """Check a batch of raw line items without writing anything."""
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("line_items must be a list")
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each line item must be an object")
        enforce_rules_line_item(
            description=raw.get("description"),
            quantity=raw.get("quantity", 1),
            unit_price_cents=raw.get("unit_price_cents"),
            sort_order=raw.get("sort_order"),
        )
    return items


def add_line_items(document, items: list[dict]) -> list:
    """Append a validated batch in list order. Does not commit."""
    created = []
    for index, raw in enumerate(items):
        sort_order = raw.get("sort_order")
        created.append(add_line_item(
            document,
            description=raw.get("description"),
            quantity=raw.get("quantity", 1),
            unit_price_cents=raw.get("unit_price_cents"),
            sort_order=sort_order if sort_order is not None else min(index, MAX_SORT_ORDER),
            commit=False,
        ))
    recompute_totals(document)
    return created


def remove_line_item(document, item_id: int) -> bool:
    """Delete one item of this document. Returns False if it is not one of its items."""
    model, parent_col, _ = _item_model(document)
    item = db.session.query(model).filter(model.id == item_id, parent_col == document.id).first()
    if item is None:
        return False
    db.session.delete(item)
    db.session.flush()
    recompute_totals(document)
    db.session.commit()
    return True


def delete_line_items(document) -> int:
    """Bulk-delete a document's items (used by cascading deletes). Does not commit."""
    model, parent_col, _ = _item_model(document)
    deleted = db.session.query(model).filter(parent_col == document.id).delete()
    return deleted
