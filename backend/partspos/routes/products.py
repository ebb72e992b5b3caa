# Overview: Flask API routes for product lots and FIFO allocation previews.

from flask import Blueprint, jsonify, request

from ..errors import DomainError
from ..extensions import db
from ..models import Lot, Product
from ..services import fifo_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    product = db.session.get(Product, product_id)
    if product is None:
        return jsonify({"error": f"Product {product_id} not found"}), 404
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>/lots")
def list_lots_route(product_id: int):
    """
    Lots of a product in FIFO order.

    Query params:
    - include_depleted: "1" to include DEPLETED lots (default: active only)
    """
    product = db.session.get(Product, product_id)
    if product is None:
        return jsonify({"error": f"Product {product_id} not found"}), 404

    if request.args.get("include_depleted") in ("1", "true"):
        lots = fifo_service.fifo_order(db.session.query(Lot).filter(Lot.product_id == product_id)).all()
    else:
        lots = fifo_service.get_available_lots(product_id)

    return jsonify({
        "product": product.to_dict(),
        "lots": [lot.to_dict() for lot in lots],
    }), 200


@products_bp.get("/<int:product_id>/allocation")
def allocation_preview_route(product_id: int):
    """
    Preview which lots would cover a quantity. Read-only.

    Query params:
    - quantity: int (required)
    """
    try:
        allocations = fifo_service.select_lots(product_id, request.args.get("quantity"))
        return jsonify({
            "product_id": product_id,
            "allocations": [a.to_dict() for a in allocations],
        }), 200
    except DomainError as e:
        return jsonify({"error": e.message, "details": e.details}), e.http_status
