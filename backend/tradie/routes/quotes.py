# Overview: Flask API routes for owner quote operations; parses input and returns JSON responses.

"""
Quote Routes (owner session)

Every route is scoped to g.owner_id. A quote id that belongs to another
owner gets the same 404 as one that does not exist.
"""

from flask import Blueprint, jsonify, current_app, g

from ..decorators import json_body, query_flag, require_auth
from ..services import invoice_service, quote_service
from ..services.lifecycle_service import LifecycleError
from ..validation import ValidationError
from tradie.time_utils import parse_iso_datetime


quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")

NOT_FOUND = ({"error": "Quote not found"}, 404)


@quotes_bp.get("")
@require_auth
def list_quotes_route():
    quotes = quote_service.list_quotes(g.owner_id, include_archived=query_flag("include_archived"))
    return jsonify({"items": [q.to_dict() for q in quotes], "count": len(quotes)})


@quotes_bp.post("")
@require_auth
def create_quote_route():
    """
    Create a draft quote.

    Request body: quote fields plus optional "line_items": [{description,
    quantity, unit_price_cents, sort_order}, ...]
    """
    try:
        data = json_body()
        line_items = data.pop("line_items", None)
        quote = quote_service.create_quote(g.owner_id, data, line_items=line_items)
        return jsonify({"quote": quote_service.quote_detail(quote)}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<int:quote_id>")
@require_auth
def get_quote_route(quote_id: int):
    detail = quote_service.get_quote_with_line_items(quote_id, g.owner_id)
    if detail is None:
        return NOT_FOUND
    return jsonify({"quote": detail})


@quotes_bp.patch("/<int:quote_id>")
@require_auth
def update_quote_route(quote_id: int):
    try:
        quote = quote_service.update_quote(quote_id, g.owner_id, json_body())
        if quote is None:
            return NOT_FOUND
        return jsonify({"quote": quote.to_dict()})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.delete("/<int:quote_id>")
@require_auth
def delete_quote_route(quote_id: int):
    try:
        if not quote_service.delete_quote(quote_id, g.owner_id):
            return NOT_FOUND
        return jsonify({"message": "Quote deleted"})
    except Exception:
        current_app.logger.exception("Failed to delete quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/<int:quote_id>/archive")
@require_auth
def archive_quote_route(quote_id: int):
    quote = quote_service.archive_quote(quote_id, g.owner_id)
    if quote is None:
        return NOT_FOUND
    return jsonify({"quote": quote.to_dict()})


@quotes_bp.post("/<int:quote_id>/unarchive")
@require_auth
def unarchive_quote_route(quote_id: int):
    quote = quote_service.unarchive_quote(quote_id, g.owner_id)
    if quote is None:
        return NOT_FOUND
    return jsonify({"quote": quote.to_dict()})


@quotes_bp.post("/<int:quote_id>/send")
@require_auth
def send_quote_route(quote_id: int):
    """
    draft -> sent. The response carries the acceptance token once, for the
    link that goes to the client.
    """
    try:
        outcome = quote_service.send_quote(quote_id, g.owner_id)
        if outcome is None:
            return NOT_FOUND
        quote, token = outcome
        return jsonify({"quote": quote.to_dict(), "acceptance_token": str(token)})
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to send quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/<int:quote_id>/token")
@require_auth
def mint_token_route(quote_id: int):
    """Mint a new acceptance token; the previous link stops working."""
    try:
        token = quote_service.mint_acceptance_token(quote_id, g.owner_id)
        if token is None:
            return NOT_FOUND
        return jsonify({"acceptance_token": str(token)}), 201
    except Exception:
        current_app.logger.exception("Failed to mint acceptance token")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<int:quote_id>/line-items")
@require_auth
def list_line_items_route(quote_id: int):
    items = quote_service.list_quote_line_items(quote_id, g.owner_id)
    if items is None:
        return NOT_FOUND
    return jsonify({"items": [i.to_dict() for i in items]})


@quotes_bp.post("/<int:quote_id>/line-items")
@require_auth
def add_line_item_route(quote_id: int):
    try:
        item = quote_service.add_quote_line_item(quote_id, g.owner_id, json_body())
        if item is None:
            return NOT_FOUND
        return jsonify({"line_item": item.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to add quote line item")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.delete("/<int:quote_id>/line-items/<int:item_id>")
@require_auth
def remove_line_item_route(quote_id: int, item_id: int):
    try:
        if not quote_service.remove_quote_line_item(quote_id, g.owner_id, item_id):
            return jsonify({"error": "Line item not found"}), 404
        return jsonify({"message": "Line item removed"})
    except Exception:
        current_app.logger.exception("Failed to remove quote line item")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/<int:quote_id>/invoice")
@require_auth
def create_invoice_from_quote_route(quote_id: int):
    """Create a draft invoice from an accepted quote. Body: {"due_date": ISO-8601?}"""
    try:
        data = json_body()
        due_date = None
        if data.get("due_date"):
            try:
                due_date = parse_iso_datetime(str(data["due_date"]))
            except ValueError:
                return jsonify({"error": "due_date must be an ISO-8601 datetime"}), 400

        invoice = invoice_service.create_invoice_from_quote(quote_id, g.owner_id, due_date=due_date)
        if invoice is None:
            return NOT_FOUND
        return jsonify({"invoice": invoice_service.invoice_detail(invoice)}), 201
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create invoice from quote")
        return jsonify({"error": "Internal server error"}), 500
