# Overview: Flask API routes for manual stock withdrawals.

from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..extensions import db
from ..models import StockWithdrawal
from ..services import withdrawal_service


withdrawals_bp = Blueprint("withdrawals", __name__, url_prefix="/api/withdrawals")


def _withdrawal_payload(withdrawal: StockWithdrawal) -> dict:
    return {
        "withdrawal": withdrawal.to_dict(),
        "lines": [line.to_dict() for line in withdrawal.lines],
    }


@withdrawals_bp.post("")
def create_withdrawal_route():
    """
    Withdraw stock, oldest lots first.

    Body: {"product_id": int, "quantity": int, "reason": str, "actor": str}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = withdrawal_service.withdraw_stock(
            data.get("product_id"),
            data.get("quantity"),
            data.get("reason"),
            actor=data.get("actor"),
        )
        withdrawal = db.session.get(StockWithdrawal, result.document_id)
        payload = _withdrawal_payload(withdrawal)
        payload["confirmation"] = result.to_dict()
        return jsonify(payload), 201

    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
    except Exception:
        current_app.logger.exception("Failed to withdraw stock")
        return jsonify({"error": "Internal server error"}), 500


@withdrawals_bp.get("")
def list_withdrawals_route():
    """
    Query params:
    - product_id: int (optional)
    - limit: int (optional, default 50, max 200)
    """
    product_id = request.args.get("product_id", type=int)
    limit = min(request.args.get("limit", default=50, type=int) or 50, 200)
    withdrawals = withdrawal_service.list_withdrawals(product_id=product_id, limit=limit)
    return jsonify({"withdrawals": [w.to_dict() for w in withdrawals]}), 200


@withdrawals_bp.get("/<int:withdrawal_id>")
def get_withdrawal_route(withdrawal_id: int):
    withdrawal = db.session.get(StockWithdrawal, withdrawal_id)
    if withdrawal is None:
        return jsonify({"error": f"StockWithdrawal {withdrawal_id} not found"}), 404
    return jsonify(_withdrawal_payload(withdrawal)), 200
