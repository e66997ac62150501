# Overview: Per-owner sequential document numbers for quotes, invoices and receipts.

"""
Document Numbering

FORMAT: prefix + year + "-" + zero padded ordinal + "-" + disambiguator
    QT-2025-001-7K2Q    (quote, default prefix)
    TT-2025-014-X9AB    (invoice, default prefix)
    REC-2025-0003-Q7Z   (receipt)

The ordinal counts up per (owner, document type, year) and restarts at 1
each year and for each owner.

ALLOCATION: a DocumentSequence row per scope is advanced with a single
atomic UPDATE (next_number = next_number + 1), so two concurrent creations
for the same owner can never read the same value. The first allocation in a
scope seeds the counter from the highest ordinal already present in that
owner's numbers for the year, so numbers issued before the counter existed
(or imported) are never reused.

The random disambiguator is kept for numbers shared across owners on the
same infrastructure; uniqueness per owner is guaranteed by the counter and
backstopped by the (owner_id, number) unique constraints.

Allocation does NOT commit: it joins the caller's transaction, so a failed
document insert also rolls the counter back.
"""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from typing import Protocol

from ..extensions import db
from ..models import BusinessSettings, DocumentSequence, Invoice, Quote, Receipt
from tradie.time_utils import numbering_year
from .concurrency import conditional_update


DISAMBIGUATOR_ALPHABET = string.ascii_uppercase + string.digits


class DocumentNumberError(Exception):
    """Raised when document sequence operations fail."""
    pass


@dataclass(frozen=True)
class NumberFormat:
    default_prefix: str
    pad: int
    suffix_length: int


DOCUMENT_NUMBER_FORMATS = {
    "quote": NumberFormat(default_prefix="QT-", pad=3, suffix_length=4),
    "invoice": NumberFormat(default_prefix="TT-", pad=3, suffix_length=4),
    "receipt": NumberFormat(default_prefix="REC-", pad=4, suffix_length=3),
}


class PrefixProvider(Protocol):
    """Looks up an owner's configured prefix; None means use the default."""

    def get_prefix(self, owner_id: int, document_type: str) -> str | None:
        ...


class SettingsPrefixProvider:
    """Reads prefixes from the owner's BusinessSettings row."""

    _columns = {
        "quote": "quote_prefix",
        "invoice": "invoice_prefix",
    }

    def get_prefix(self, owner_id: int, document_type: str) -> str | None:
        column = self._columns.get(document_type)
        if column is None:
            return None
        settings = db.session.query(BusinessSettings).filter_by(owner_id=owner_id).first()
        if not settings:
            return None
        return getattr(settings, column) or None


def _number_column(document_type: str):
    if document_type == "quote":
        return Quote.number, Quote.owner_id
    if document_type == "invoice":
        return Invoice.number, Invoice.owner_id
    return Receipt.receipt_number, Receipt.owner_id


def parse_ordinal(number: str | None, year: int) -> int | None:
    """
    Extract the ordinal from a number issued in the given year.

    Prefix-agnostic, so changing a prefix mid-year continues the count.
    A trailing disambiguator is optional (older numbers had none).
    """
    if not number:
        return None
    match = re.search(rf"{year}-(\d+)(?:-[A-Z0-9]+)?$", number)
    if not match:
        return None
    return int(match.group(1))


def max_issued_ordinal(owner_id: int, document_type: str, year: int) -> int:
    """Highest ordinal already present in the owner's numbers for the year (0 if none)."""
    number_col, owner_col = _number_column(document_type)
    numbers = (
        db.session.query(number_col)
        .filter(owner_col == owner_id, number_col.like(f"%{year}-%"))
        .all()
    )
    ordinals = [parse_ordinal(n, year) for (n,) in numbers]
    return max([o for o in ordinals if o is not None], default=0)


def random_disambiguator(length: int) -> str:
    return "".join(secrets.choice(DISAMBIGUATOR_ALPHABET) for _ in range(length))


def _allocate_ordinal(owner_id: int, document_type: str, year: int) -> int:
    scope = (
        DocumentSequence.owner_id == owner_id,
        DocumentSequence.document_type == document_type,
        DocumentSequence.year == year,
    )

    def _read_back() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(owner_id=owner_id, document_type=document_type, year=year)
            .scalar()
        )
        return current - 1

    if conditional_update(DocumentSequence, scope, {"next_number": DocumentSequence.next_number + 1}):
        return _read_back()

    # If another transaction creates the row first, the flush raises
    # IntegrityError; callers retry their whole unit of work, which then
    # takes the increment path above.
    seed = max_issued_ordinal(owner_id, document_type, year) + 1
    db.session.add(DocumentSequence(
        owner_id=owner_id,
        document_type=document_type,
        year=year,
        next_number=seed + 1,
    ))
    db.session.flush()
    return seed


def next_document_number(
    *,
    owner_id: int,
    document_type: str,
    prefix_provider: PrefixProvider | None = None,
    year: int | None = None,
) -> str:
    """
    Allocate the next display number for an owner's document.

    A missing owner configuration falls back to the type's default prefix.
    Must be called inside the transaction that inserts the document.
    """
    if not owner_id:
        raise DocumentNumberError("owner_id is required")
    fmt = DOCUMENT_NUMBER_FORMATS.get(document_type)
    if fmt is None:
        raise DocumentNumberError(
            f"Invalid document_type '{document_type}'. Must be one of: {', '.join(DOCUMENT_NUMBER_FORMATS)}"
        )

    year = year or numbering_year()
    ordinal = _allocate_ordinal(owner_id, document_type, year)

    provider = prefix_provider or SettingsPrefixProvider()
    prefix = provider.get_prefix(owner_id, document_type) or fmt.default_prefix

    return f"{prefix}{year}-{ordinal:0{fmt.pad}d}-{random_disambiguator(fmt.suffix_length)}"
