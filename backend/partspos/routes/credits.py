# Overview: Flask API routes for customer credits; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..models.documents import KIND_CREDIT
from ..services import confirmation_service, document_service, lifecycle_service, line_item_service
from ..services.document_service import load_document, load_lines
from ..time_utils import parse_iso_date
from ..validation import ValidationError


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


def _credit_payload(credit_id: int) -> dict:
    credit = load_document(KIND_CREDIT, credit_id)
    return {
        "credit": credit.to_dict(),
        "lines": [line.to_dict() for line in load_lines(KIND_CREDIT, credit_id)],
    }


def _due_date(data: dict):
    try:
        return parse_iso_date(data.get("due_date"))
    except (TypeError, ValueError):
        raise ValidationError("due_date must be YYYY-MM-DD")


@credits_bp.post("/")
def create_credit_route():
    """
    Create a new DRAFT credit.

    Body: {"customer_id": int, "due_date": "YYYY-MM-DD", "notes": str, "created_by": str}
    """
    try:
        data = request.get_json(silent=True) or {}
        credit = document_service.create_credit(
            customer_id=data.get("customer_id"),
            created_by=data.get("created_by"),
            notes=data.get("notes"),
            due_date=_due_date(data),
        )
        return jsonify(_credit_payload(credit.id)), 201

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/<int:credit_id>")
def get_credit_route(credit_id: int):
    try:
        return jsonify(_credit_payload(credit_id)), 200
    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status


@credits_bp.post("/<int:credit_id>/lines")
def add_line_route(credit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        lines = line_item_service.add_product(
            KIND_CREDIT,
            credit_id,
            data.get("product_id"),
            data.get("quantity"),
            data.get("unit_price_cents"),
        )
        payload = _credit_payload(credit_id)
        payload["added_lines"] = [line.to_dict() for line in lines]
        return jsonify(payload), 201

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add credit line")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.patch("/<int:credit_id>/lines/<int:line_id>")
def update_line_route(credit_id: int, line_id: int):
    try:
        data = request.get_json(silent=True) or {}
        line_item_service.update_line(
            KIND_CREDIT,
            credit_id,
            line_id,
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify(_credit_payload(credit_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update credit line")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.delete("/<int:credit_id>/lines/<int:line_id>")
def remove_line_route(credit_id: int, line_id: int):
    try:
        line_item_service.remove_line(KIND_CREDIT, credit_id, line_id)
        return jsonify(_credit_payload(credit_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove credit line")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/<int:credit_id>/save")
def save_credit_route(credit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        lifecycle_service.save_credit(credit_id, notes=data.get("notes"), due_date=_due_date(data))
        return jsonify(_credit_payload(credit_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to save credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/<int:credit_id>/confirm")
def confirm_credit_route(credit_id: int):
    """Confirm: consumes lot stock and adds the total to the customer's balance."""
    try:
        data = request.get_json(silent=True) or {}
        result = confirmation_service.confirm_credit(credit_id, actor=data.get("actor"))
        payload = _credit_payload(credit_id)
        payload["confirmation"] = result.to_dict()
        return jsonify(payload), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to confirm credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/<int:credit_id>/cancel")
def cancel_credit_route(credit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        lifecycle_service.cancel_credit(credit_id, reason=data.get("reason"))
        return jsonify(_credit_payload(credit_id)), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel credit")
        return jsonify({"error": "Internal server error"}), 500
