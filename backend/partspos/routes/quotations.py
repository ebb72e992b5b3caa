# Overview: Flask API routes for quotations; parses input and returns JSON responses.

"""
Quotation API routes.

Handlers only translate JSON to service calls and DomainErrors to status
codes; every stock and total rule lives in the services.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..extensions import db
from ..models import Sale
from ..models.documents import KIND_QUOTATION
from ..services import confirmation_service, document_service, lifecycle_service, line_item_service
from ..services.document_service import load_document, load_lines


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


def _quotation_payload(quotation_id: int) -> dict:
    quotation = load_document(KIND_QUOTATION, quotation_id)
    payload = {
        "quotation": quotation.to_dict(),
        "lines": [line.to_dict() for line in load_lines(KIND_QUOTATION, quotation_id)],
    }
    if quotation.sale_id:
        sale = db.session.get(Sale, quotation.sale_id)
        payload["sale"] = sale.to_dict()
        payload["sale_lines"] = [line.to_dict() for line in sale.lines]
        payload["sale_payments"] = [p.to_dict() for p in sale.payments]
    return payload


@quotations_bp.post("/")
def create_quotation_route():
    """Create a new DRAFT quotation."""
    try:
        data = request.get_json(silent=True) or {}
        quotation = document_service.create_quotation(
            customer_id=data.get("customer_id"),
            created_by=data.get("created_by"),
            notes=data.get("notes"),
            vehicle_plate=data.get("vehicle_plate"),
        )
        return jsonify(_quotation_payload(quotation.id)), 201

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/<int:quotation_id>")
def get_quotation_route(quotation_id: int):
    try:
        return jsonify(_quotation_payload(quotation_id)), 200
    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status


@quotations_bp.post("/<int:quotation_id>/lines")
def add_line_route(quotation_id: int):
    """
    Add a product; expands into one line per FIFO lot.

    Body: {"product_id": int, "quantity": int, "unit_price_cents": int (optional)}
    """
    try:
        data = request.get_json(silent=True) or {}
        lines = line_item_service.add_product(
            KIND_QUOTATION,
            quotation_id,
            data.get("product_id"),
            data.get("quantity"),
            data.get("unit_price_cents"),
        )
        payload = _quotation_payload(quotation_id)
        payload["added_lines"] = [line.to_dict() for line in lines]
        return jsonify(payload), 201

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add quotation line")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.patch("/<int:quotation_id>/lines/<int:line_id>")
def update_line_route(quotation_id: int, line_id: int):
    try:
        data = request.get_json(silent=True) or {}
        line_item_service.update_line(
            KIND_QUOTATION,
            quotation_id,
            line_id,
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify(_quotation_payload(quotation_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update quotation line")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.delete("/<int:quotation_id>/lines/<int:line_id>")
def remove_line_route(quotation_id: int, line_id: int):
    try:
        line_item_service.remove_line(KIND_QUOTATION, quotation_id, line_id)
        return jsonify(_quotation_payload(quotation_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove quotation line")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/save")
def save_quotation_route(quotation_id: int):
    """
    DRAFT -> PENDING.

    Body: {"payment_method": str, "payment_plan": [{"method", "amount_cents"}], "notes": str}
    """
    try:
        data = request.get_json(silent=True) or {}
        lifecycle_service.save_quotation(
            quotation_id,
            payment_method=data.get("payment_method"),
            payment_plan=data.get("payment_plan"),
            notes=data.get("notes"),
        )
        return jsonify(_quotation_payload(quotation_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to save quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/confirm")
def confirm_quotation_route(quotation_id: int):
    """Confirm into a sale: consumes lot stock and writes lot movements."""
    try:
        data = request.get_json(silent=True) or {}
        result = confirmation_service.confirm_quotation(quotation_id, actor=data.get("actor"))
        payload = _quotation_payload(quotation_id)
        payload["confirmation"] = result.to_dict()
        return jsonify(payload), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to confirm quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/cancel")
def cancel_quotation_route(quotation_id: int):
    try:
        data = request.get_json(silent=True) or {}
        lifecycle_service.cancel_quotation(quotation_id, reason=data.get("reason"))
        return jsonify(_quotation_payload(quotation_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel quotation")
        return jsonify({"error": "Internal server error"}), 500
