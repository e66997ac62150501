# Overview: Flask API routes for owner invoice operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import json_body, query_flag, require_auth
from ..services import invoice_service, receipt_service
from ..services.lifecycle_service import LifecycleError
from ..validation import ValidationError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

NOT_FOUND = ({"error": "Invoice not found"}, 404)


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    invoices = invoice_service.list_invoices(
        g.owner_id,
        include_archived=query_flag("include_archived"),
        status=request.args.get("status"),
    )
    return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)})


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    try:
        data = json_body()
        line_items = data.pop("line_items", None)
        invoice = invoice_service.create_invoice(g.owner_id, data, line_items=line_items)
        return jsonify({"invoice": invoice_service.invoice_detail(invoice)}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    detail = invoice_service.get_invoice_with_line_items(invoice_id, g.owner_id)
    if detail is None:
        return NOT_FOUND
    return jsonify({"invoice": detail})


@invoices_bp.patch("/<int:invoice_id>")
@require_auth
def update_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.update_invoice(invoice_id, g.owner_id, json_body())
        if invoice is None:
            return NOT_FOUND
        return jsonify({"invoice": invoice.to_dict()})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice_route(invoice_id: int):
    try:
        if not invoice_service.delete_invoice(invoice_id, g.owner_id):
            return NOT_FOUND
        return jsonify({"message": "Invoice deleted"})
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/archive")
@require_auth
def archive_invoice_route(invoice_id: int):
    invoice = invoice_service.archive_invoice(invoice_id, g.owner_id)
    if invoice is None:
        return NOT_FOUND
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.post("/<int:invoice_id>/unarchive")
@require_auth
def unarchive_invoice_route(invoice_id: int):
    invoice = invoice_service.unarchive_invoice(invoice_id, g.owner_id)
    if invoice is None:
        return NOT_FOUND
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.post("/<int:invoice_id>/send")
@require_auth
def send_invoice_route(invoice_id: int):
    try:
        outcome = invoice_service.send_invoice(invoice_id, g.owner_id)
        if outcome is None:
            return NOT_FOUND
        invoice, token = outcome
        return jsonify({"invoice": invoice.to_dict(), "payment_token": str(token)})
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to send invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/token")
@require_auth
def mint_token_route(invoice_id: int):
    try:
        token = invoice_service.mint_payment_token(invoice_id, g.owner_id)
        if token is None:
            return NOT_FOUND
        return jsonify({"payment_token": str(token)}), 201
    except Exception:
        current_app.logger.exception("Failed to mint payment token")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/line-items")
@require_auth
def list_line_items_route(invoice_id: int):
    items = invoice_service.list_invoice_line_items(invoice_id, g.owner_id)
    if items is None:
        return NOT_FOUND
    return jsonify({"items": [i.to_dict() for i in items]})


@invoices_bp.post("/<int:invoice_id>/line-items")
@require_auth
def add_line_item_route(invoice_id: int):
    try:
        item = invoice_service.add_invoice_line_item(invoice_id, g.owner_id, json_body())
        if item is None:
            return NOT_FOUND
        return jsonify({"line_item": item.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to add invoice line item")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>/line-items/<int:item_id>")
@require_auth
def remove_line_item_route(invoice_id: int, item_id: int):
    try:
        if not invoice_service.remove_invoice_line_item(invoice_id, g.owner_id, item_id):
            return jsonify({"error": "Line item not found"}), 404
        return jsonify({"message": "Line item removed"})
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to remove invoice line item")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>/payment-schedule")
@require_auth
def attach_schedule_route(invoice_id: int):
    """
    Attach or replace the installment plan.

    Request body: {"installments": [{"amount_cents": 50000, "due_date": "2025-07-01T00:00:00Z"}, ...]}
    """
    try:
        data = json_body()
        schedule = invoice_service.attach_payment_schedule(invoice_id, g.owner_id, data.get("installments"))
        if schedule is None:
            return NOT_FOUND
        return jsonify({"payment_schedule": schedule.to_dict()})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to attach payment schedule")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>/payment-schedule")
@require_auth
def detach_schedule_route(invoice_id: int):
    """Remove the installment plan so line items can change again."""
    try:
        if not invoice_service.detach_payment_schedule(invoice_id, g.owner_id):
            return NOT_FOUND
        return jsonify({"message": "Payment schedule removed"})
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to remove payment schedule")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/mark-paid")
@require_auth
def mark_paid_route(invoice_id: int):
    """
    Record a manual payment.

    Request body (all optional): {"amount_cents", "payment_method", "payment_reference"}
    """
    try:
        data = json_body()
        outcome = invoice_service.mark_invoice_paid(
            invoice_id,
            g.owner_id,
            amount_cents=data.get("amount_cents"),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
        )
        if outcome is None:
            return NOT_FOUND
        invoice, receipt = outcome
        return jsonify({
            "invoice": invoice.to_dict(),
            "receipt": receipt.to_dict() if receipt else None,
        })
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to mark invoice paid")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/receipts")
@require_auth
def list_receipts_route():
    receipts = receipt_service.list_receipts(g.owner_id, invoice_id=request.args.get("invoice_id", type=int))
    return jsonify({"items": [r.to_dict() for r in receipts]})
