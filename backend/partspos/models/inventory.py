from __future__ import annotations

from ..extensions import db
from partspos.time_utils import to_utc_z


LOT_STATUS_ACTIVE = "ACTIVE"
LOT_STATUS_DEPLETED = "DEPLETED"


class Product(db.Model):
    """
    Catalog product with its aggregate stock.

    stock_on_hand and default_cost_cents are mutated ONLY by the confirmation
    write phase. default_cost_cents is the unit cost of the product's FIFO head
    (earliest lot still active), or 0 when no lot remains. It is not a
    weighted average.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.Index("ix_products_name", "name"),
        db.CheckConstraint("stock_on_hand >= 0", name="chk_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Store code printed on shelves and tickets
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    stock_on_hand = db.Column(db.Integer, nullable=False, default=0)

    default_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    min_price_cents = db.Column(db.Integer, nullable=False, default=0)
    default_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} stock={self.stock_on_hand}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "brand": self.brand,
            "color": self.color,
            "size": self.size,
            "location": self.location,
            "description": self.description,
            "stock_on_hand": self.stock_on_hand,
            "default_cost_cents": self.default_cost_cents,
            "min_price_cents": self.min_price_cents,
            "default_price_cents": self.default_price_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Lot(db.Model):
    """
    One intake batch of a product.

    INVARIANTS:
    - quantity_received and unit_cost_cents never change after creation
    - quantity_remaining decreases only through confirmation
    - status == DEPLETED iff quantity_remaining == 0
    - lots are never deleted (cost history)
    """
    __tablename__ = "lots"
    __table_args__ = (
        db.UniqueConstraint("product_id", "lot_number", name="uq_lots_product_number"),
        # FIFO query: product + status + remaining, ordered by intake time
        db.Index("ix_lots_product_status_received", "product_id", "status", "received_at"),
        db.CheckConstraint("quantity_received > 0", name="chk_lots_received_gt_zero"),
        db.CheckConstraint("quantity_remaining >= 0", name="chk_lots_remaining_non_negative"),
        db.CheckConstraint("quantity_remaining <= quantity_received", name="chk_lots_remaining_lte_received"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Supplier / intake reference
    lot_number = db.Column(db.String(64), nullable=False)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    quantity_received = db.Column(db.Integer, nullable=False)
    quantity_remaining = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=LOT_STATUS_ACTIVE, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("lots", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Lot id={self.id} product_id={self.product_id} number={self.lot_number!r} "
            f"remaining={self.quantity_remaining} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_number": self.lot_number,
            "received_at": to_utc_z(self.received_at),
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "unit_cost_cents": self.unit_cost_cents,
            "status": self.status,
            "version_id": self.version_id,
        }
