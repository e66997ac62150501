from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from tradie.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# Line item ordering bounds
MIN_SORT_ORDER = 0
MAX_SORT_ORDER = 9999

MAX_QUANTITY = Decimal("99999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


# Owner edits: status, number, tokens and totals are never writable here;
# they move only through lifecycle operations.
QUOTE_POLICY = ModelValidationPolicy(
    writable_fields={
        "client_id", "title", "description", "notes", "valid_until",
        "deposit_required", "deposit_percent_bps",
    },
    required_on_create={"title"},
)

INVOICE_POLICY = ModelValidationPolicy(
    writable_fields={
        "client_id", "title", "description", "notes", "due_date",
        "allow_online_payment",
    },
    required_on_create={"title"},
)

# Fields the payment/acceptance collaborators may patch holding only a token
QUOTE_TOKEN_POLICY = ModelValidationPolicy(
    writable_fields={"deposit_paid", "deposit_paid_at", "deposit_payment_intent_id"},
)

INVOICE_TOKEN_POLICY = ModelValidationPolicy(
    writable_fields={
        "payment_method", "payment_reference", "stripe_payment_intent_id", "receipt_sent_at",
    },
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(field: str, value: Any) -> int:
    """Whole numbers only: 3 and "3" pass; 3.0, "3.5" and "3e2" do not."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{field} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{field} must be an integer")


def _coerce_datetime(field: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a datetime")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    return parsed


def _coerce_value(col, value: Any):
    if value is None:
        return None

    coltype = col.type
    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)
    if isinstance(coltype, Numeric):
        return parse_quantity(value, field=col.key)
    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a boolean")
        return value
    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = [f for f in sorted(required) if f not in payload]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_quantity(value: Any, *, field: str = "quantity") -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        qty = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not qty.is_finite():
        raise ValidationError(f"{field} must be a number")
    return qty


def enforce_rules_amount(value: Any, *, field: str) -> int:
    """Money amounts are whole cents in [0, MAX_AMOUNT_CENTS]."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})")
    return value


def enforce_rules_line_item(*, description: Any, quantity: Any, unit_price_cents: Any, sort_order: Any) -> dict:
    """
    Line item rules; runs before anything is written.
    """
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("description is required")

    qty = parse_quantity(quantity)
    if qty <= 0:
        raise ValidationError("quantity must be > 0")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
    if qty != qty.quantize(Decimal("0.01")):
        raise ValidationError("quantity supports at most 2 decimal places")

    price = enforce_rules_amount(unit_price_cents, field="unit_price_cents")

    if sort_order is not None:
        if isinstance(sort_order, bool) or not isinstance(sort_order, int):
            raise ValidationError("sort_order must be an integer")
        if sort_order < MIN_SORT_ORDER or sort_order > MAX_SORT_ORDER:
            raise ValidationError(f"sort_order must be between {MIN_SORT_ORDER} and {MAX_SORT_ORDER}")

    return {
        "description": description.strip(),
        "quantity": qty,
        "unit_price_cents": price,
        "sort_order": sort_order,
    }


def enforce_rules_quote(patch: dict) -> None:
    bps = patch.get("deposit_percent_bps")
    if bps is not None and (bps < 0 or bps > 10000):
        raise ValidationError("deposit_percent_bps must be between 0 and 10000")
