# Overview: Consistency audit of lot stock against products and the lot movement ledger.

"""
Ledger audit.

Checks, per product:
- lot status agrees with quantity_remaining (DEPLETED iff 0)
- quantity_remaining never exceeds quantity_received
- quantity_received - quantity_remaining == Σ movements of the lot
- stock_on_hand == Σ quantity_remaining of its lots
- default_cost_cents == unit cost of the FIFO head (0 when none)

Read-only; reports issues, never repairs stock.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Lot, LotMovement, Product
from ..models.inventory import LOT_STATUS_DEPLETED
from .fifo_service import fifo_head_cost, get_available_lots


def movement_totals_by_lot() -> dict[int, int]:
    rows = (
        db.session.query(LotMovement.lot_id, func.coalesce(func.sum(LotMovement.quantity), 0))
        .group_by(LotMovement.lot_id)
        .all()
    )
    return {lot_id: int(total) for lot_id, total in rows}


def verify_lots() -> list[dict]:
    """Return one issue dict per broken invariant. Empty list means consistent."""
    issues = []
    moved = movement_totals_by_lot()

    for product in db.session.query(Product).order_by(Product.id).all():
        lots = db.session.query(Lot).filter(Lot.product_id == product.id).order_by(Lot.id).all()

        for lot in lots:
            depleted = lot.status == LOT_STATUS_DEPLETED
            if depleted != (lot.quantity_remaining == 0):
                issues.append({
                    "check": "lot_status",
                    "product_id": product.id,
                    "lot_id": lot.id,
                    "status": lot.status,
                    "quantity_remaining": lot.quantity_remaining,
                })
            if lot.quantity_remaining > lot.quantity_received:
                issues.append({
                    "check": "lot_overfilled",
                    "product_id": product.id,
                    "lot_id": lot.id,
                    "quantity_received": lot.quantity_received,
                    "quantity_remaining": lot.quantity_remaining,
                })
            consumed = lot.quantity_received - lot.quantity_remaining
            if consumed != moved.get(lot.id, 0):
                issues.append({
                    "check": "lot_movements",
                    "product_id": product.id,
                    "lot_id": lot.id,
                    "consumed": consumed,
                    "movements_total": moved.get(lot.id, 0),
                })

        lot_stock = sum(lot.quantity_remaining for lot in lots)
        if product.stock_on_hand != lot_stock:
            issues.append({
                "check": "product_stock",
                "product_id": product.id,
                "stock_on_hand": product.stock_on_hand,
                "lots_remaining": lot_stock,
            })

        expected_cost = fifo_head_cost(get_available_lots(product.id))
        if lots and product.default_cost_cents != expected_cost:
            issues.append({
                "check": "default_cost",
                "product_id": product.id,
                "default_cost_cents": product.default_cost_cents,
                "fifo_head_cost_cents": expected_cost,
            })

    return issues
