# Overview: Read-only Flask API route over the append-only lot movement ledger.

from flask import Blueprint, jsonify, request

from ..extensions import db
from ..models import LotMovement


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


@movements_bp.get("")
def list_movements_route():
    """
    List lot movements, newest first.

    Query params:
    - product_id: int (optional)
    - lot_id: int (optional)
    - limit: int (optional, default 100, max 500)
    """
    product_id = request.args.get("product_id", type=int)
    lot_id = request.args.get("lot_id", type=int)
    limit = min(request.args.get("limit", default=100, type=int) or 100, 500)

    query = db.session.query(LotMovement)
    if product_id is not None:
        query = query.filter(LotMovement.product_id == product_id)
    if lot_id is not None:
        query = query.filter(LotMovement.lot_id == lot_id)

    movements = query.order_by(LotMovement.occurred_at.desc(), LotMovement.id.desc()).limit(limit).all()
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200
