# Overview: Quote lifecycle for owners (session scoped) and clients (capability token).

"""
Quote Service

OWNER OPERATIONS: every read and write filters on (quote_id, owner_id).
A quote that exists but belongs to someone else is reported exactly like a
quote that does not exist: the getter returns None.

PUBLIC OPERATIONS: the acceptance token is the only credential. Lookups use
the token alone (never combined with an owner check) against the single
uq_quotes_acceptance_token index, so one owner's token can never resolve
another owner's quote. Unknown, cleared and malformed tokens all return
None.

ACCEPT / DECLINE are single conditional UPDATEs keyed by token:

    UPDATE quotes SET status='accepted', accepted_at=..., accepted_by=...
     WHERE acceptance_token = :token [AND status = 'sent']

The status predicate is only added when STRICT_PUBLIC_TRANSITIONS is on.
Otherwise a repeat accept succeeds again and overwrites the acceptance
details (last writer wins).
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import BusinessSettings, DigitalSignature, Invoice, Quote, SecurityEvent
from ..validation import (
    QUOTE_POLICY,
    QUOTE_TOKEN_POLICY,
    ValidationError,
    enforce_rules_quote,
    validate_payload,
)
from tradie.time_utils import utcnow
from . import line_item_service
from .capability_tokens import CapabilityToken
from .concurrency import conditional_update, run_with_retry, INSERT_RACE_ERRORS
from .lifecycle_service import LifecycleError, require_transition
from .security_service import log_security_event
from .sequence_service import next_document_number


def _token_length() -> int:
    return current_app.config.get("CAPABILITY_TOKEN_LENGTH", 12)


def _strict_public_transitions() -> bool:
    return bool(current_app.config.get("STRICT_PUBLIC_TRANSITIONS", False))


# =============================================================================
# Owner-scoped reads
# =============================================================================

def list_quotes(owner_id: int, *, include_archived: bool = False) -> list[Quote]:
    """Owner's quotes, newest first. Archived quotes only when include_archived."""
    query = db.session.query(Quote).filter(Quote.owner_id == owner_id)
    if not include_archived:
        query = query.filter(Quote.archived_at.is_(None))
    return query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()


def get_quote(quote_id: int, owner_id: int) -> Quote | None:
    return db.session.query(Quote).filter(
        Quote.id == quote_id,
        Quote.owner_id == owner_id,
    ).first()


def quote_detail(quote: Quote) -> dict:
    data = quote.to_dict()
    data["line_items"] = [item.to_dict() for item in line_item_service.list_line_items(quote)]
    data["signature"] = quote.signature.to_dict() if quote.signature else None
    return data


def get_quote_with_line_items(quote_id: int, owner_id: int) -> dict | None:
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None
    return quote_detail(quote)


# =============================================================================
# Owner-scoped writes
# =============================================================================

def create_quote(owner_id: int, payload: dict, *, line_items: list[dict] | None = None) -> Quote:
    """
    Create a draft quote with a freshly allocated number.

    Input is fully validated before the transaction starts. The number
    allocation, quote insert and line items commit together.
    """
    patch = validate_payload(model=Quote, payload=payload, policy=QUOTE_POLICY, partial=False)
    enforce_rules_quote(patch)
    items = line_item_service.validate_line_items(line_items)

    def _op() -> Quote:
        quote = Quote(
            owner_id=owner_id,
            number=next_document_number(owner_id=owner_id, document_type="quote"),
            status="draft",
            **patch,
        )
        db.session.add(quote)
        db.session.flush()

        line_item_service.add_line_items(quote, items)
        db.session.commit()
        return quote

    return run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)


def update_quote(quote_id: int, owner_id: int, payload: dict) -> Quote | None:
    """Patch allow-listed fields. Status, number, token and totals are not writable."""
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None

    patch = validate_payload(model=Quote, payload=payload, policy=QUOTE_POLICY, partial=True)
    enforce_rules_quote(patch)
    for key, value in patch.items():
        setattr(quote, key, value)
    db.session.commit()
    return quote


def archive_quote(quote_id: int, owner_id: int) -> Quote | None:
    """Set archived_at; already archived quotes keep their original timestamp."""
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None
    if quote.archived_at is None:
        quote.archived_at = utcnow()
        db.session.commit()
    return quote


def unarchive_quote(quote_id: int, owner_id: int) -> Quote | None:
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None
    if quote.archived_at is not None:
        quote.archived_at = None
        db.session.commit()
    return quote


def delete_quote(quote_id: int, owner_id: int) -> bool:
    """
    Hard-delete a quote and everything it owns.

    Line items and the signature are deleted first; invoices created from
    the quote are kept and lose their quote reference.
    """
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return False

    line_item_service.delete_line_items(quote)
    db.session.query(DigitalSignature).filter(DigitalSignature.quote_id == quote.id).delete()
    db.session.query(Invoice).filter(Invoice.quote_id == quote.id).update(
        {"quote_id": None}, synchronize_session=False
    )
    db.session.query(Quote).filter(Quote.id == quote.id, Quote.owner_id == owner_id).delete()
    db.session.commit()
    return True


def _assign_token(quote: Quote, **changes) -> CapabilityToken:
    """Store a fresh token plus any other column changes in one commit."""
    def _op() -> CapabilityToken:
        token = CapabilityToken.generate(_token_length())
        for column, value in changes.items():
            setattr(quote, column, value)
        quote.acceptance_token = str(token)
        db.session.commit()
        return token

    return run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)


def mint_acceptance_token(quote_id: int, owner_id: int) -> CapabilityToken | None:
    """
    Generate a new acceptance token, replacing (and so invalidating) any
    previous one. Returns None if the quote is not the owner's.
    """
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None
    return _assign_token(quote)


def send_quote(quote_id: int, owner_id: int) -> tuple[Quote, CapabilityToken] | None:
    """
    draft -> sent. Stamps sent_at and makes sure the quote has an
    acceptance token, returned so the caller can build the client link.

    Raises LifecycleError if the quote is not a draft.
    """
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None

    require_transition("quote", quote.id, quote.status, "sent")
    sent = {"status": "sent", "sent_at": utcnow()}
    if quote.acceptance_token:
        for column, value in sent.items():
            setattr(quote, column, value)
        db.session.commit()
        return quote, CapabilityToken(quote.acceptance_token)
    return quote, _assign_token(quote, **sent)


# =============================================================================
# Line items (owner)
# =============================================================================

def list_quote_line_items(quote_id: int, owner_id: int) -> list | None:
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None
    return line_item_service.list_line_items(quote)


def add_quote_line_item(quote_id: int, owner_id: int, fields: dict):
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return None
    if not isinstance(fields, dict):
        raise ValidationError("Invalid JSON payload")
    return line_item_service.add_line_item(
        quote,
        description=fields.get("description"),
        quantity=fields.get("quantity", 1),
        unit_price_cents=fields.get("unit_price_cents"),
        sort_order=fields.get("sort_order"),
    )


def remove_quote_line_item(quote_id: int, owner_id: int, item_id: int) -> bool:
    quote = get_quote(quote_id, owner_id)
    if quote is None:
        return False
    return line_item_service.remove_line_item(quote, item_id)


# =============================================================================
# Public (capability token)
# =============================================================================

def _find_by_token(token: CapabilityToken, *, refresh: bool = False) -> Quote | None:
    query = db.session.query(Quote).filter(Quote.acceptance_token == str(token))
    if refresh:
        query = query.populate_existing()
    return query.first()


def get_quote_by_token(raw_token) -> Quote | None:
    token = CapabilityToken.parse(raw_token)
    if token is None:
        return None
    return _find_by_token(token)


def public_quote_view(quote: Quote) -> dict:
    """What a client holding the link may see: no owner or client ids."""
    data = quote_detail(quote)
    data.pop("owner_id", None)
    data.pop("client_id", None)
    data.pop("has_acceptance_token", None)
    settings = db.session.query(BusinessSettings).filter_by(owner_id=quote.owner_id).first()
    data["business_name"] = settings.business_name if settings else None
    return data


def _apply_public_transition(token: CapabilityToken, to_status: str, values: dict) -> Quote | None:
    criteria = [Quote.acceptance_token == str(token)]
    if _strict_public_transitions():
        criteria.append(Quote.status == "sent")

    matched = conditional_update(Quote, criteria, {"status": to_status, "updated_at": utcnow(), **values})
    if matched == 0:
        db.session.rollback()
        existing = _find_by_token(token)
        if existing is None:
            return None
        raise LifecycleError(
            f"Quote {existing.id} is '{existing.status}' and can no longer be {to_status}"
        )
    db.session.commit()
    return _find_by_token(token, refresh=True)


def accept_quote_by_token(
    raw_token,
    accepted_by: str,
    source_ip: str | None = None,
    *,
    signature_data: str | None = None,
    user_agent: str | None = None,
) -> Quote | None:
    """
    Mark a quote accepted on behalf of the client holding its link.

    Records who accepted, when, and from which address. A drawn signature,
    when supplied, is stored (or replaced) alongside.

    Returns None for unknown tokens. Raises LifecycleError only when
    STRICT_PUBLIC_TRANSITIONS is on and the quote has left "sent".
    """
    if not isinstance(accepted_by, str) or not accepted_by.strip():
        raise ValidationError("accepted_by is required")
    accepted_by = accepted_by.strip()
    if len(accepted_by) > 255:
        raise ValidationError("accepted_by exceeds max length 255")

    token = CapabilityToken.parse(raw_token)
    if token is None:
        return None

    quote = _apply_public_transition(token, "accepted", {
        "accepted_at": utcnow(),
        "accepted_by": accepted_by,
        "acceptance_ip": source_ip,
    })
    if quote is None:
        return None

    if signature_data:
        _store_signature(quote, accepted_by, signature_data, source_ip)

    log_security_event(
        account_id=quote.owner_id,
        event_type="QUOTE_ACCEPTED",
        success=True,
        resource=SecurityEvent.resource_key("quote", quote.id),
        action="accept",
        ip_address=source_ip,
        user_agent=user_agent,
    )
    current_app.logger.info("Quote %s accepted via public link", quote.id)
    return quote


def _store_signature(quote: Quote, signer_name: str, signature_data: str, ip_address: str | None) -> None:
    def _op() -> None:
        signature = db.session.query(DigitalSignature).filter_by(quote_id=quote.id).first()
        if signature is None:
            signature = DigitalSignature(quote_id=quote.id)
            db.session.add(signature)
        signature.signer_name = signer_name
        signature.signature_data = signature_data
        signature.ip_address = ip_address
        signature.signed_at = utcnow()
        db.session.commit()

    run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)


def decline_quote_by_token(
    raw_token,
    reason: str | None = None,
    *,
    source_ip: str | None = None,
    user_agent: str | None = None,
) -> Quote | None:
    """Mark a quote declined, with an optional reason. Same token rules as accept."""
    if reason is not None:
        if not isinstance(reason, str):
            raise ValidationError("reason must be a string")
        reason = reason.strip() or None

    token = CapabilityToken.parse(raw_token)
    if token is None:
        return None

    quote = _apply_public_transition(token, "declined", {
        "rejected_at": utcnow(),
        "decline_reason": reason,
    })
    if quote is None:
        return None

    log_security_event(
        account_id=quote.owner_id,
        event_type="QUOTE_DECLINED",
        success=True,
        resource=SecurityEvent.resource_key("quote", quote.id),
        action="decline",
        ip_address=source_ip,
        user_agent=user_agent,
    )
    current_app.logger.info("Quote %s declined via public link", quote.id)
    return quote


def update_quote_by_token(raw_token, fields: dict) -> Quote | None:
    """
    Patch deposit fields for the payment collaborator. Only the fields in
    QUOTE_TOKEN_POLICY are writable; anything else is a ValidationError.
    """
    patch = validate_payload(model=Quote, payload=fields, policy=QUOTE_TOKEN_POLICY, partial=True)

    quote = get_quote_by_token(raw_token)
    if quote is None:
        return None
    for key, value in patch.items():
        setattr(quote, key, value)
    db.session.commit()
    return quote
