# Overview: Quote and invoice state machines.

"""
Document Lifecycle Rules

QUOTE:
    draft -> sent -> accepted
                  -> declined

INVOICE:
    draft -> sent -> partially_paid -> paid
                  -> paid
                  -> overdue -> paid
    partially_paid -> overdue
    overdue -> partially_paid

archived_at is an orthogonal flag: archive/unarchive never touch status.

RULES:
1. Transitions are one-directional (no backwards movement)
2. accepted, declined and paid are terminal
3. Owner operations enforce these rules and raise LifecycleError
4. Public token accept/decline follow STRICT_PUBLIC_TRANSITIONS
   (see quote_service)
"""

from __future__ import annotations
from typing import Literal


QUOTE_STATUSES = {"draft", "sent", "accepted", "declined"}
INVOICE_STATUSES = {"draft", "sent", "partially_paid", "paid", "overdue"}

QuoteStatus = Literal["draft", "sent", "accepted", "declined"]
InvoiceStatus = Literal["draft", "sent", "partially_paid", "paid", "overdue"]

_QUOTE_TRANSITIONS = {
    ("draft", "sent"),
    ("sent", "accepted"),
    ("sent", "declined"),
}

_INVOICE_TRANSITIONS = {
    ("draft", "sent"),
    ("sent", "partially_paid"),
    ("sent", "paid"),
    ("sent", "overdue"),
    ("partially_paid", "paid"),
    ("partially_paid", "overdue"),
    ("overdue", "partially_paid"),
    ("overdue", "paid"),
}

# Invoices that can still take a payment
PAYABLE_INVOICE_STATUSES = {"sent", "partially_paid", "overdue"}


class LifecycleError(ValueError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error. It indicates
    that the caller attempted an operation that violates business rules.
    """
    pass


def _rules(document_type: str) -> tuple[set[str], set[tuple[str, str]]]:
    if document_type == "quote":
        return QUOTE_STATUSES, _QUOTE_TRANSITIONS
    if document_type == "invoice":
        return INVOICE_STATUSES, _INVOICE_TRANSITIONS
    raise LifecycleError(f"Unknown document type '{document_type}'")


def validate_status(document_type: str, status: str) -> None:
    statuses, _ = _rules(document_type)
    if status not in statuses:
        raise LifecycleError(
            f"Invalid {document_type} status '{status}'. Must be one of: {', '.join(sorted(statuses))}"
        )


def can_transition(document_type: str, from_status: str, to_status: str) -> bool:
    """Check a transition against the document type's state machine."""
    validate_status(document_type, from_status)
    validate_status(document_type, to_status)
    _, transitions = _rules(document_type)
    return (from_status, to_status) in transitions


def require_transition(document_type: str, document_id: int, from_status: str, to_status: str) -> None:
    if not can_transition(document_type, from_status, to_status):
        raise LifecycleError(
            f"Cannot move {document_type} {document_id} from '{from_status}' to '{to_status}'"
        )
