# Overview: FIFO lot selection; partitions a requested quantity across a product's oldest lots.

"""
FIFO Selector

Lots are consumed strictly oldest intake first: received_at ASC, id ASC
(id breaks ties between lots received at the same instant).

Two layers:
- allocate(): pure partitioning over an already-ordered list of lots. It
  is used for speculative allocation when lines are added and again inside
  the confirmation read phase, so both paths run the same arithmetic.
- select_lots(): reads the product's available lots (optionally locked)
  and calls allocate().

Nothing here writes. A shortfall raises InsufficientStockError before any
caller touches the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError
from ..models import Lot, Product
from ..models.inventory import LOT_STATUS_ACTIVE
from ..validation import coerce_quantity
from .concurrency import lock_for_update


@dataclass(frozen=True)
class LotAllocation:
    """Quantity taken from one lot, with the lot's cost snapshot."""

    lot_id: int
    product_id: int
    lot_number: str
    received_at: datetime | None
    unit_cost_cents: int
    quantity: int

    def to_dict(self) -> dict:
        return {
            "lot_id": self.lot_id,
            "product_id": self.product_id,
            "lot_number": self.lot_number,
            "unit_cost_cents": self.unit_cost_cents,
            "quantity": self.quantity,
        }


def fifo_order(query):
    return query.order_by(Lot.received_at.asc(), Lot.id.asc())


def get_available_lots(product_id: int, *, lock: bool = False) -> list[Lot]:
    """Active lots with stock left, oldest first."""
    query = db.session.query(Lot).filter(
        Lot.product_id == product_id,
        Lot.status == LOT_STATUS_ACTIVE,
        Lot.quantity_remaining > 0,
    )
    query = fifo_order(query)
    if lock:
        query = lock_for_update(query)
    return query.all()


def usable_quantity(lot, consumed: dict[int, int] | None = None) -> int:
    """Remaining stock of a lot after quantities already claimed in this unit of work."""
    if lot.status != LOT_STATUS_ACTIVE:
        return 0
    taken = (consumed or {}).get(lot.id, 0)
    return max(lot.quantity_remaining - taken, 0)


def allocate(
    product_id: int,
    lots,
    quantity: int,
    consumed: dict[int, int] | None = None,
) -> list[LotAllocation]:
    """
    Partition quantity across lots in the given order.

    lots must already be FIFO-ordered. consumed maps lot_id -> units claimed
    by earlier lines of the same document or transaction.

    Returns one LotAllocation per lot touched; Σ quantity == quantity.
    Raises InsufficientStockError when the lots cannot cover it.
    """
    remaining = quantity
    allocations: list[LotAllocation] = []

    for lot in lots:
        if remaining == 0:
            break
        usable = usable_quantity(lot, consumed)
        if usable <= 0:
            continue

        take = min(remaining, usable)
        allocations.append(
            LotAllocation(
                lot_id=lot.id,
                product_id=product_id,
                lot_number=lot.lot_number,
                received_at=lot.received_at,
                unit_cost_cents=lot.unit_cost_cents,
                quantity=take,
            )
        )
        remaining -= take

    if remaining > 0:
        raise InsufficientStockError(
            product_id=product_id,
            requested=quantity,
            available=quantity - remaining,
        )

    return allocations


def select_lots(
    product_id: int,
    quantity_needed,
    *,
    lock: bool = False,
    consumed: dict[int, int] | None = None,
) -> list[LotAllocation]:
    """Read available lots for a product and allocate quantity_needed FIFO."""
    quantity = coerce_quantity(quantity_needed, "quantity")

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)

    lots = get_available_lots(product_id, lock=lock)
    return allocate(product_id, lots, quantity, consumed)


def fifo_head_cost(lots, consumed: dict[int, int] | None = None) -> int:
    """
    Unit cost of the first lot that still has stock after consumption.

    Returns 0 when every lot is exhausted.
    """
    for lot in lots:
        if usable_quantity(lot, consumed) > 0:
            return lot.unit_cost_cents
    return 0
