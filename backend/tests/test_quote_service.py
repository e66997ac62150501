# Overview: Pytest coverage for quote lifecycle, line items and public token access.

"""
Quote Lifecycle Tests

OWNER SCOPE: a quote owned by someone else behaves exactly like a missing
quote (None / False), never an error that reveals it exists.

PUBLIC SCOPE: the acceptance token is the only credential.
"""

from decimal import Decimal

import pytest

from tradie.models import DigitalSignature, Invoice, QuoteLineItem, SecurityEvent
from tradie.services import invoice_service, quote_service
from tradie.services.capability_tokens import CapabilityToken
from tradie.services.lifecycle_service import LifecycleError
from tradie.validation import ValidationError


def _sent_quote(owner, **fields):
    payload = {"title": "Switchboard upgrade"}
    payload.update(fields)
    quote = quote_service.create_quote(owner.id, payload, line_items=[
        {"description": "Labour", "quantity": 3, "unit_price_cents": 9500},
        {"description": "Switchboard", "quantity": 1, "unit_price_cents": 120000},
    ])
    quote, token = quote_service.send_quote(quote.id, owner.id)
    return quote, token


class TestOwnerOperations:

    def test_create_draft_with_totals(self, db_session, owner_a):
        quote = quote_service.create_quote(owner_a.id, {"title": "Rewire"}, line_items=[
            {"description": "Cable", "quantity": "2.5", "unit_price_cents": 333},
            {"description": "Labour", "quantity": 2, "unit_price_cents": 8000},
        ])

        assert quote.status == "draft"
        assert quote.number.startswith("QT-")
        # 2.5 * 333 = 832.5 -> 833 (half up)
        assert quote.subtotal_cents == 833 + 16000
        assert quote.gst_cents == 1683
        assert quote.total_cents == 16833 + 1683

    def test_no_gst_when_not_registered(self, db_session, owner_b):
        quote = quote_service.create_quote(owner_b.id, {"title": "Tap"}, line_items=[
            {"description": "Washer", "quantity": 1, "unit_price_cents": 1000},
        ])

        assert quote.gst_cents == 0
        assert quote.total_cents == 1000
        assert quote.number.startswith("PP-Q-")

    def test_invalid_input_writes_nothing(self, db_session, owner_a):
        with pytest.raises(ValidationError):
            quote_service.create_quote(owner_a.id, {"title": "Bad"}, line_items=[
                {"description": "Labour", "quantity": 1, "unit_price_cents": 100, "sort_order": 10000},
            ])
        with pytest.raises(ValidationError):
            quote_service.create_quote(owner_a.id, {})
        with pytest.raises(ValidationError):
            quote_service.create_quote(owner_a.id, {"title": "X", "status": "accepted"})

        assert quote_service.list_quotes(owner_a.id, include_archived=True) == []

    def test_numbers_increment_per_owner(self, db_session, owner_a, owner_b):
        first = quote_service.create_quote(owner_a.id, {"title": "One"})
        second = quote_service.create_quote(owner_a.id, {"title": "Two"})
        other = quote_service.create_quote(owner_b.id, {"title": "Other"})

        assert first.number.split("-")[2] == "001"
        assert second.number.split("-")[2] == "002"
        assert "-001-" in other.number

    def test_other_owner_sees_not_found(self, db_session, owner_a, owner_b):
        quote = quote_service.create_quote(owner_a.id, {"title": "Private"})

        assert quote_service.get_quote(quote.id, owner_b.id) is None
        assert quote_service.get_quote_with_line_items(quote.id, owner_b.id) is None
        assert quote_service.update_quote(quote.id, owner_b.id, {"title": "Hijack"}) is None
        assert quote_service.archive_quote(quote.id, owner_b.id) is None
        assert quote_service.mint_acceptance_token(quote.id, owner_b.id) is None
        assert quote_service.send_quote(quote.id, owner_b.id) is None
        assert quote_service.delete_quote(quote.id, owner_b.id) is False
        assert quote_service.get_quote(quote.id, owner_a.id).title == "Private"

    def test_update_allow_listed_fields(self, db_session, owner_a):
        quote = quote_service.create_quote(owner_a.id, {"title": "Old"})

        updated = quote_service.update_quote(quote.id, owner_a.id, {
            "title": "New", "valid_until": "2025-08-01T00:00:00Z",
        })
        assert updated.title == "New"

        with pytest.raises(ValidationError):
            quote_service.update_quote(quote.id, owner_a.id, {"acceptance_token": "x"})

    def test_archive_listing(self, db_session, owner_a):
        quote = quote_service.create_quote(owner_a.id, {"title": "Archive me"})
        quote_service.archive_quote(quote.id, owner_a.id)

        assert quote_service.list_quotes(owner_a.id) == []
        assert [q.id for q in quote_service.list_quotes(owner_a.id, include_archived=True)] == [quote.id]

        quote_service.unarchive_quote(quote.id, owner_a.id)
        assert [q.id for q in quote_service.list_quotes(owner_a.id)] == [quote.id]

    def test_archive_is_idempotent(self, db_session, owner_a):
        quote = quote_service.create_quote(owner_a.id, {"title": "Twice"})
        first = quote_service.archive_quote(quote.id, owner_a.id).archived_at
        second = quote_service.archive_quote(quote.id, owner_a.id).archived_at

        assert first == second
        assert quote_service.get_quote(quote.id, owner_a.id).status == "draft"

    def test_send_only_from_draft(self, db_session, owner_a):
        quote, token = _sent_quote(owner_a)

        assert quote.status == "sent"
        assert quote.sent_at is not None
        assert isinstance(token, CapabilityToken)
        with pytest.raises(LifecycleError):
            quote_service.send_quote(quote.id, owner_a.id)

    def test_send_without_token_stays_draft(self, db_session, owner_a, monkeypatch):
        quote = quote_service.create_quote(owner_a.id, {"title": "Rewire"})
        monkeypatch.setattr("tradie.services.quote_service._token_length", lambda: 1)

        with pytest.raises(ValueError):
            quote_service.send_quote(quote.id, owner_a.id)
        db_session.rollback()

        quote = quote_service.get_quote(quote.id, owner_a.id)
        assert quote.status == "draft"
        assert quote.sent_at is None
        assert quote.acceptance_token is None

    def test_reminting_invalidates_old_token(self, db_session, owner_a):
        quote, old_token = _sent_quote(owner_a)
        new_token = quote_service.mint_acceptance_token(quote.id, owner_a.id)

        assert new_token != old_token
        assert quote_service.get_quote_by_token(old_token) is None
        assert quote_service.get_quote_by_token(new_token).id == quote.id

    def test_line_items_recompute_totals(self, db_session, owner_a):
        quote = quote_service.create_quote(owner_a.id, {"title": "Lights"})
        item = quote_service.add_quote_line_item(quote.id, owner_a.id, {
            "description": "Downlight", "quantity": "4", "unit_price_cents": 2500,
        })

        quote = quote_service.get_quote(quote.id, owner_a.id)
        assert item.quantity == Decimal("4")
        assert quote.subtotal_cents == 10000
        assert quote.total_cents == 11000

        assert quote_service.remove_quote_line_item(quote.id, owner_a.id, item.id) is True
        quote = quote_service.get_quote(quote.id, owner_a.id)
        assert quote.total_cents == 0
        assert quote_service.remove_quote_line_item(quote.id, owner_a.id, item.id) is False

    def test_line_item_sort_order_bounds(self, db_session, owner_a):
        quote = quote_service.create_quote(owner_a.id, {"title": "Bounds"})

        with pytest.raises(ValidationError):
            quote_service.add_quote_line_item(quote.id, owner_a.id, {
                "description": "X", "unit_price_cents": 1, "sort_order": -1,
            })
        with pytest.raises(ValidationError):
            quote_service.add_quote_line_item(quote.id, owner_a.id, {
                "description": "X", "unit_price_cents": 1, "quantity": 0,
            })

    def test_delete_cascades_and_keeps_invoices(self, db_session, owner_a):
        quote, token = _sent_quote(owner_a)
        quote_service.accept_quote_by_token(token, "Jo Client", signature_data="data:image/png;base64,AAA")
        invoice = invoice_service.create_invoice_from_quote(quote.id, owner_a.id)

        assert quote_service.delete_quote(quote.id, owner_a.id) is True

        assert db_session.query(QuoteLineItem).count() == 0
        assert db_session.query(DigitalSignature).count() == 0
        kept = db_session.query(Invoice).filter_by(id=invoice.id).one()
        assert kept.quote_id is None
        assert quote_service.get_quote_by_token(token) is None


class TestPublicOperations:

    def test_accept_then_get(self, db_session, owner_a):
        quote, token = _sent_quote(owner_a)

        accepted = quote_service.accept_quote_by_token(token, "Jo Client", "203.0.113.9")
        fetched = quote_service.get_quote_by_token(token)

        assert accepted.status == "accepted"
        assert fetched.status == "accepted"
        assert fetched.accepted_at is not None
        assert fetched.accepted_by == "Jo Client"
        assert fetched.acceptance_ip == "203.0.113.9"

    def test_accept_records_signature_and_audit(self, db_session, owner_a):
        quote, token = _sent_quote(owner_a)
        quote_service.accept_quote_by_token(token, "Jo Client", signature_data="data:image/png;base64,AAA")

        signature = db_session.query(DigitalSignature).filter_by(quote_id=quote.id).one()
        assert signature.signer_name == "Jo Client"
        event = db_session.query(SecurityEvent).filter_by(event_type="QUOTE_ACCEPTED").one()
        assert event.resource == f"quote:{quote.id}"
        assert str(token) not in (event.action or "") + (event.reason or "")

    def test_accept_requires_name(self, db_session, owner_a):
        _, token = _sent_quote(owner_a)

        with pytest.raises(ValidationError):
            quote_service.accept_quote_by_token(token, "   ")

    def test_unknown_and_foreign_tokens_look_the_same(self, db_session, owner_a, owner_b):
        quote_a, token_a = _sent_quote(owner_a)
        _sent_quote(owner_b)

        never_minted = CapabilityToken.generate()
        assert quote_service.get_quote_by_token(never_minted) is None
        assert quote_service.get_quote_by_token("not a token!") is None
        assert quote_service.accept_quote_by_token(never_minted, "Mallory") is None
        assert quote_service.decline_quote_by_token(never_minted) is None
        # A token resolves only its own document, whoever owns it
        assert quote_service.get_quote_by_token(token_a).id == quote_a.id

    def test_decline_and_reaccept_are_both_audited(self, db_session, owner_a):
        quote, token = _sent_quote(owner_a)
        quote_service.decline_quote_by_token(token, reason="Too dear")
        quote_service.accept_quote_by_token(token, "Jo Client")

        events = [e.event_type for e in SecurityEvent.for_document("quote", quote.id)]
        assert events == ["QUOTE_DECLINED", "QUOTE_ACCEPTED"]

    def test_decline_with_reason(self, db_session, owner_a):
        _, token = _sent_quote(owner_a)

        quote = quote_service.decline_quote_by_token(token, "  Too expensive ")

        assert quote.status == "declined"
        assert quote.rejected_at is not None
        assert quote.decline_reason == "Too expensive"

    def test_repeat_accept_overwrites_by_default(self, db_session, owner_a):
        _, token = _sent_quote(owner_a)
        quote_service.accept_quote_by_token(token, "First Person")

        again = quote_service.accept_quote_by_token(token, "Second Person")

        assert again.status == "accepted"
        assert again.accepted_by == "Second Person"

    def test_strict_mode_rejects_repeat_transitions(self, db_session, owner_a, strict_transitions):
        _, token = _sent_quote(owner_a)
        quote_service.accept_quote_by_token(token, "First Person")

        with pytest.raises(LifecycleError):
            quote_service.accept_quote_by_token(token, "Second Person")
        with pytest.raises(LifecycleError):
            quote_service.decline_quote_by_token(token, "Changed my mind")

        assert quote_service.get_quote_by_token(token).accepted_by == "First Person"
        assert quote_service.accept_quote_by_token(CapabilityToken.generate(), "X") is None

    def test_strict_mode_rejects_unsent_quote(self, db_session, owner_a, strict_transitions):
        quote = quote_service.create_quote(owner_a.id, {"title": "Draft"})
        token = quote_service.mint_acceptance_token(quote.id, owner_a.id)

        with pytest.raises(LifecycleError):
            quote_service.accept_quote_by_token(token, "Jo")

    def test_public_view_hides_owner_details(self, db_session, owner_a):
        _, token = _sent_quote(owner_a)

        view = quote_service.public_quote_view(quote_service.get_quote_by_token(token))

        assert "owner_id" not in view
        assert "client_id" not in view
        assert view["business_name"] == "Sparky Electrical"
        assert len(view["line_items"]) == 2

    def test_update_by_token_limited_fields(self, db_session, owner_a):
        _, token = _sent_quote(owner_a, deposit_required=True, deposit_percent_bps=2000)

        quote = quote_service.update_quote_by_token(token, {
            "deposit_paid": True, "deposit_payment_intent_id": "pi_123",
        })
        assert quote.deposit_paid is True

        with pytest.raises(ValidationError):
            quote_service.update_quote_by_token(token, {"status": "accepted"})
        assert quote_service.update_quote_by_token(CapabilityToken.generate(), {"deposit_paid": True}) is None
