# Overview: Flask API routes for client-facing quote and invoice links; no session required.

"""
Public Document Routes

The capability token in the URL is the only credential. An unknown,
replaced or malformed token always gets the same 404 body, so a caller
cannot tell "never existed" from "belongs to someone else".

Tokens are never echoed back or logged.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import json_body
from ..services import invoice_service, quote_service
from ..services.lifecycle_service import LifecycleError
from ..validation import ValidationError


public_bp = Blueprint("public", __name__, url_prefix="/api/public")

NOT_FOUND = ({"error": "Document not found"}, 404)


def _client_meta() -> dict:
    return {
        "source_ip": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


@public_bp.get("/quotes/<token>")
def get_quote_route(token: str):
    try:
        quote = quote_service.get_quote_by_token(token)
        if quote is None:
            return NOT_FOUND
        return jsonify({"quote": quote_service.public_quote_view(quote)})
    except Exception:
        current_app.logger.exception("Failed to get quote by token")
        return jsonify({"error": "Internal server error"}), 500


@public_bp.post("/quotes/<token>/accept")
def accept_quote_route(token: str):
    """
    Request body: {"accepted_by": "Jo Client", "signature_data": "data:image/png;base64,..."?}
    """
    try:
        data = json_body()
        quote = quote_service.accept_quote_by_token(
            token,
            data.get("accepted_by"),
            request.remote_addr,
            signature_data=data.get("signature_data"),
            user_agent=request.headers.get("User-Agent"),
        )
        if quote is None:
            return NOT_FOUND
        return jsonify({"quote": quote_service.public_quote_view(quote), "message": "Quote accepted"})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LifecycleError:
        return jsonify({"error": "This quote can no longer be accepted"}), 409
    except Exception:
        current_app.logger.exception("Failed to accept quote")
        return jsonify({"error": "Internal server error"}), 500


@public_bp.post("/quotes/<token>/decline")
def decline_quote_route(token: str):
    """Request body: {"reason": "..."?}"""
    try:
        data = json_body()
        quote = quote_service.decline_quote_by_token(token, data.get("reason"), **_client_meta())
        if quote is None:
            return NOT_FOUND
        return jsonify({"quote": quote_service.public_quote_view(quote), "message": "Quote declined"})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LifecycleError:
        return jsonify({"error": "This quote can no longer be declined"}), 409
    except Exception:
        current_app.logger.exception("Failed to decline quote")
        return jsonify({"error": "Internal server error"}), 500


@public_bp.patch("/quotes/<token>")
def update_quote_route(token: str):
    """Deposit bookkeeping from the payment collaborator."""
    try:
        quote = quote_service.update_quote_by_token(token, json_body())
        if quote is None:
            return NOT_FOUND
        return jsonify({"quote": quote_service.public_quote_view(quote)})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update quote by token")
        return jsonify({"error": "Internal server error"}), 500


@public_bp.get("/invoices/<token>")
def get_invoice_route(token: str):
    try:
        invoice = invoice_service.get_invoice_by_token(token)
        if invoice is None:
            return NOT_FOUND
        return jsonify({"invoice": invoice_service.public_invoice_view(invoice)})
    except Exception:
        current_app.logger.exception("Failed to get invoice by token")
        return jsonify({"error": "Internal server error"}), 500


@public_bp.post("/invoices/<token>/pay")
def pay_invoice_route(token: str):
    """
    Record a payment against the invoice behind the link.

    Request body (all optional): {"amount_cents", "payment_method", "payment_reference"}
    Paying an already paid invoice returns it unchanged with "receipt": null.
    """
    try:
        data = json_body()
        outcome = invoice_service.pay_invoice_by_token(
            token,
            amount_cents=data.get("amount_cents"),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
            **_client_meta(),
        )
        if outcome is None:
            return NOT_FOUND
        invoice, receipt = outcome
        return jsonify({
            "invoice": invoice_service.public_invoice_view(invoice),
            "receipt": receipt.to_dict() if receipt else None,
        })
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LifecycleError:
        return jsonify({"error": "This invoice cannot take payments yet"}), 409
    except Exception:
        current_app.logger.exception("Failed to record invoice payment")
        return jsonify({"error": "Internal server error"}), 500


@public_bp.patch("/invoices/<token>")
def update_invoice_route(token: str):
    """Payment bookkeeping from the payment collaborator."""
    try:
        invoice = invoice_service.update_invoice_by_token(token, json_body())
        if invoice is None:
            return NOT_FOUND
        return jsonify({"invoice": invoice_service.public_invoice_view(invoice)})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice by token")
        return jsonify({"error": "Internal server error"}), 500
