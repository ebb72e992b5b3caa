# Overview: Flask API routes for customer balances and credit payments (abonos).

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..services import credit_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


@payments_bp.get("/customers/<int:customer_id>/balance")
def customer_balance_route(customer_id: int):
    """Outstanding balance plus the open credits and active payments behind it."""
    try:
        return jsonify(credit_service.customer_statement(customer_id)), 200
    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status


@payments_bp.post("/customers/<int:customer_id>/payments")
def register_payment_route(customer_id: int):
    """
    Register an installment.

    Body: {"amount_cents": int, "method": str, "actor": str, "note": str}
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = credit_service.register_payment(
            customer_id,
            data.get("amount_cents"),
            method=data.get("method"),
            actor=data.get("actor"),
            note=data.get("note"),
        )
        return jsonify({
            "payment": payment.to_dict(),
            "outstanding_cents": credit_service.outstanding_balance(customer_id),
        }), 201

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to register payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/payments/<int:payment_id>/cancel")
def cancel_payment_route(payment_id: int):
    try:
        data = request.get_json(silent=True) or {}
        payment = credit_service.cancel_payment(payment_id, reason=data.get("reason"))
        return jsonify({
            "payment": payment.to_dict(),
            "outstanding_cents": credit_service.outstanding_balance(payment.customer_id),
        }), 200

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel payment")
        return jsonify({"error": "Internal server error"}), 500
