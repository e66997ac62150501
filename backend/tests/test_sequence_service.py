# Overview: Pytest coverage for per-owner document numbering.

import re

import pytest

from tradie.models import DocumentSequence, Quote
from tradie.services.sequence_service import (
    DocumentNumberError,
    next_document_number,
    parse_ordinal,
)


QUOTE_2025 = re.compile(r"^QT-2025-(\d{3})-[A-Z0-9]{4}$")


class FixedPrefix:
    def __init__(self, prefix):
        self.prefix = prefix

    def get_prefix(self, owner_id, document_type):
        return self.prefix


class TestParseOrdinal:

    def test_with_disambiguator(self):
        assert parse_ordinal("QT-2025-014-7K2Q", 2025) == 14

    def test_without_disambiguator(self):
        assert parse_ordinal("QT-2025-007", 2025) == 7

    def test_other_year_ignored(self):
        assert parse_ordinal("QT-2024-014-7K2Q", 2025) is None

    def test_prefix_agnostic(self):
        assert parse_ordinal("SE-Q-2025-003-ABCD", 2025) == 3

    def test_garbage(self):
        assert parse_ordinal("not a number", 2025) is None
        assert parse_ordinal(None, 2025) is None


class TestNextDocumentNumber:

    def test_first_and_second_quote(self, db_session, owner_a):
        first = next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        second = next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        db_session.commit()

        assert QUOTE_2025.match(first).group(1) == "001"
        assert QUOTE_2025.match(second).group(1) == "002"

    def test_sequential_numbers_strictly_increase(self, db_session, owner_a):
        ordinals = [
            parse_ordinal(next_document_number(owner_id=owner_a.id, document_type="invoice", year=2025), 2025)
            for _ in range(12)
        ]
        db_session.commit()

        assert ordinals == list(range(1, 13))

    def test_scope_is_per_owner(self, db_session, owner_a, owner_b):
        next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        number_b = next_document_number(owner_id=owner_b.id, document_type="quote", year=2025)
        db_session.commit()

        assert number_b.startswith("PP-Q-2025-001-")

    def test_scope_is_per_type_and_year(self, db_session, owner_a):
        next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        invoice = next_document_number(owner_id=owner_a.id, document_type="invoice", year=2025)
        next_year = next_document_number(owner_id=owner_a.id, document_type="quote", year=2026)
        db_session.commit()

        assert invoice.startswith("TT-2025-001-")
        assert next_year.startswith("QT-2026-001-")

    def test_receipt_format(self, db_session, owner_a):
        number = next_document_number(owner_id=owner_a.id, document_type="receipt", year=2025)
        db_session.commit()

        assert re.match(r"^REC-2025-0001-[A-Z0-9]{3}$", number)

    def test_seeds_from_existing_numbers(self, db_session, owner_a):
        """Numbers issued before the counter existed are never reused."""
        db_session.add(Quote(owner_id=owner_a.id, number="QT-2025-041-ABCD", title="Imported", status="draft"))
        db_session.commit()

        number = next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        db_session.commit()

        assert parse_ordinal(number, 2025) == 42
        seq = db_session.query(DocumentSequence).filter_by(owner_id=owner_a.id, document_type="quote").one()
        assert seq.next_number == 43

    def test_prefix_provider_injected(self, db_session, owner_a):
        number = next_document_number(
            owner_id=owner_a.id, document_type="quote", prefix_provider=FixedPrefix("JOB-"), year=2025
        )
        db_session.commit()

        assert number.startswith("JOB-2025-001-")

    def test_missing_prefix_falls_back_to_default(self, db_session, owner_a):
        number = next_document_number(
            owner_id=owner_a.id, document_type="invoice", prefix_provider=FixedPrefix(None), year=2025
        )
        db_session.commit()

        assert number.startswith("TT-2025-")

    def test_invalid_document_type(self, db_session, owner_a):
        with pytest.raises(DocumentNumberError):
            next_document_number(owner_id=owner_a.id, document_type="purchase_order")

    def test_owner_required(self, db_session):
        with pytest.raises(DocumentNumberError):
            next_document_number(owner_id=None, document_type="quote")

    def test_rollback_releases_number(self, db_session, owner_a):
        next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        db_session.rollback()

        number = next_document_number(owner_id=owner_a.id, document_type="quote", year=2025)
        db_session.commit()

        assert parse_ordinal(number, 2025) == 1
