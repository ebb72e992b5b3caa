from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from partspos.time_utils import to_utc_z


MOVEMENT_QUOTATION_CONFIRMED = "QUOTATION_CONFIRMED"
MOVEMENT_CREDIT_CONFIRMED = "CREDIT_CONFIRMED"
MOVEMENT_WITHDRAWAL = "WITHDRAWAL"


class LotMovement(db.Model):
    """
    Append-only lot consumption ledger.

    GUARANTEES:
    - Created once, never updated or deleted (enforced by mapper events below)
    - Exactly one row per (confirmation, lot) pair
    - Written inside the same DB transaction as the stock decrement it records
    """
    __tablename__ = "lot_movements"
    __table_args__ = (
        db.Index("ix_lot_movements_lot_occurred", "lot_id", "occurred_at"),
        db.Index("ix_lot_movements_product_occurred", "product_id", "occurred_at"),
        db.CheckConstraint("quantity > 0", name="chk_lot_movements_qty_gt_zero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)

    # Originating documents (quotation + sale, credit, or withdrawal)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=True, index=True)
    withdrawal_id = db.Column(db.Integer, db.ForeignKey("stock_withdrawals.id"), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    lot_remaining_after = db.Column(db.Integer, nullable=False)

    actor = db.Column(db.String(120), nullable=True)

    # Business time vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_type": self.movement_type,
            "quotation_id": self.quotation_id,
            "sale_id": self.sale_id,
            "credit_id": self.credit_id,
            "withdrawal_id": self.withdrawal_id,
            "product_id": self.product_id,
            "lot_id": self.lot_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "lot_remaining_after": self.lot_remaining_after,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to modify an append-only ledger row."""


@event.listens_for(LotMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableRecordError(f"LotMovement {target.id} is append-only and cannot be updated")


@event.listens_for(LotMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(f"LotMovement {target.id} is append-only and cannot be deleted")
