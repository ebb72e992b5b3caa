# Overview: Atomic confirmation of quotations, credits and stock withdrawals; consumes lot stock and writes the movement ledger.

"""
Transactional Mutator

Confirmation is split in two phases, composed inside run_with_retry:

    plan_confirmation()   read + validate, returns a ConfirmationPlan
    apply_confirmation()  writes only, from the plan

READ PHASE:
- lock the header, read its lines; credits re-check the customer's credit flag
- lock every referenced product, its active lots and any bound lot
- walk the lines in id order accumulating per-lot and per-product
  consumption; unbound lines are allocated FIFO after the units earlier
  lines already claimed

VALIDATE PHASE (any violation raises before a single write):
- product stock >= requested, lot stock >= requested
- header totals == Σ lines
- quotation payment split == total

WRITE PHASE:
- decrement lots (DEPLETED at 0) and products
- default_cost_cents := cost of the earliest still-active lot, or 0
- quotation: create the Sale, its lines (one per lot) and its payments
- credit, withdrawal: re-bind unbound lines to lots (one line per lot)
- withdrawal: cost_total_cents := Σ consumed units * lot cost
- one LotMovement per lot touched
- mark the source CONFIRMED

A StaleDataError or OperationalError at any point rolls the whole attempt
back and re-runs both phases from a fresh snapshot. The unit of work holds
no state between attempts, so a retry can never double-decrement.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError
from ..models import Lot, LotMovement, Product, Sale, SaleLine, SalePayment
from ..models.documents import KIND_CREDIT, KIND_QUOTATION, KIND_SALE, KIND_WITHDRAWAL, STATUS_CONFIRMED
from ..models.inventory import LOT_STATUS_DEPLETED
from ..models.ledger import MOVEMENT_CREDIT_CONFIRMED, MOVEMENT_QUOTATION_CONFIRMED, MOVEMENT_WITHDRAWAL
from ..validation import ValidationError, optional_text
from partspos.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import (
    document_models,
    load_document,
    load_lines,
    next_document_number,
    payment_split,
    require_credit_customer,
)
from .fifo_service import LotAllocation, allocate, fifo_head_cost, get_available_lots, usable_quantity
from .lifecycle_service import require_transition
from .line_item_service import materialize


SALE_PREFIX = "V"

MOVEMENT_TYPES = {
    KIND_QUOTATION: MOVEMENT_QUOTATION_CONFIRMED,
    KIND_CREDIT: MOVEMENT_CREDIT_CONFIRMED,
    KIND_WITHDRAWAL: MOVEMENT_WITHDRAWAL,
}


@dataclass
class ConfirmationPlan:
    """Write set computed by the read phase. Only valid inside its own transaction."""

    kind: str
    header: object
    products: dict[int, Product]
    lots: dict[int, Lot]
    # (source line, allocations) in line id order
    line_allocations: list[tuple[object, list[LotAllocation]]]
    # lot_id / product_id -> units, in first-use order
    lot_consumption: dict[int, int]
    product_consumption: dict[int, int]
    default_costs: dict[int, int]
    payments: list[dict] = field(default_factory=list)


@dataclass
class ConfirmationResult:
    kind: str
    document_id: int
    sale_id: int | None
    movements: list[LotMovement]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "document_id": self.document_id,
            "sale_id": self.sale_id,
            "movements": [m.to_dict() for m in self.movements],
        }


def _lock_products(product_ids: list[int]) -> dict[int, Product]:
    query = db.session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id)
    products = {p.id: p for p in lock_for_update(query).all()}
    for product_id in product_ids:
        if product_id not in products:
            raise NotFoundError("Product", product_id)
    return products


def _lock_lots(lot_ids: list[int]) -> dict[int, Lot]:
    if not lot_ids:
        return {}
    query = db.session.query(Lot).filter(Lot.id.in_(lot_ids)).order_by(Lot.id)
    lots = {lot.id: lot for lot in lock_for_update(query).all()}
    for lot_id in lot_ids:
        if lot_id not in lots:
            raise NotFoundError("Lot", lot_id)
    return lots


def plan_confirmation(kind: str, document_id: int) -> ConfirmationPlan:
    """Read and validate everything a confirmation will write. Writes nothing."""
    header = load_document(kind, document_id, lock=True)
    require_transition(header, STATUS_CONFIRMED)
    if kind == KIND_CREDIT:
        # Credit may have been disabled after the draft was opened
        require_credit_customer(header.customer_id)

    lines = load_lines(kind, document_id)
    if not lines:
        raise ValidationError(f"Cannot confirm {type(header).__name__} {document_id} with no lines")

    product_ids = sorted({line.product_id for line in lines})
    products = _lock_products(product_ids)

    fifo_lots = {pid: get_available_lots(pid, lock=True) for pid in product_ids}
    lots = {lot.id: lot for pid_lots in fifo_lots.values() for lot in pid_lots}
    bound_ids = sorted({line.lot_id for line in lines if line.lot_id is not None} - set(lots))
    lots.update(_lock_lots(bound_ids))

    lot_consumption: dict[int, int] = {}
    product_consumption: dict[int, int] = {}
    line_allocations = []

    for line in lines:
        product_consumption[line.product_id] = product_consumption.get(line.product_id, 0) + line.quantity

        if line.lot_id is None:
            allocations = allocate(line.product_id, fifo_lots[line.product_id], line.quantity, lot_consumption)
        else:
            lot = lots[line.lot_id]
            if lot.product_id != line.product_id:
                raise ValidationError(
                    f"Line {line.id} is bound to lot {lot.id} of another product",
                    details={"line_id": line.id, "lot_id": lot.id, "product_id": line.product_id},
                )
            available = usable_quantity(lot, lot_consumption)
            if line.quantity > available:
                raise InsufficientStockError(
                    product_id=line.product_id,
                    lot_id=lot.id,
                    requested=line.quantity,
                    available=available,
                )
            allocations = [
                LotAllocation(
                    lot_id=lot.id,
                    product_id=lot.product_id,
                    lot_number=lot.lot_number,
                    received_at=lot.received_at,
                    unit_cost_cents=lot.unit_cost_cents,
                    quantity=line.quantity,
                )
            ]

        for allocation in allocations:
            lot_consumption[allocation.lot_id] = lot_consumption.get(allocation.lot_id, 0) + allocation.quantity
        line_allocations.append((line, allocations))

    for product_id, requested in product_consumption.items():
        product = products[product_id]
        if product.stock_on_hand < requested:
            raise InsufficientStockError(
                product_id=product_id,
                requested=requested,
                available=product.stock_on_hand,
            )

    computed_total = sum(line.subtotal_cents for line in lines)
    computed_margin = sum(line.margin_total_cents for line in lines)
    if header.total_cents != computed_total or header.margin_total_cents != computed_margin:
        raise ValidationError(
            f"{type(header).__name__} {document_id} totals do not match its lines",
            details={
                "total_cents": header.total_cents,
                "lines_total_cents": computed_total,
                "margin_total_cents": header.margin_total_cents,
                "lines_margin_total_cents": computed_margin,
            },
        )

    payments = []
    if kind == KIND_QUOTATION:
        payments = payment_split(header.total_cents, header.payment_method, header.payment_plan)
        paid = sum(p["amount_cents"] for p in payments)
        if paid != header.total_cents:
            raise ValidationError(
                f"Payment split {paid} does not equal quotation total {header.total_cents}",
                details={"payments_total_cents": paid, "total_cents": header.total_cents},
            )

    default_costs = {
        pid: fifo_head_cost(fifo_lots[pid], lot_consumption) for pid in product_ids
    }

    return ConfirmationPlan(
        kind=kind,
        header=header,
        products=products,
        lots=lots,
        line_allocations=line_allocations,
        lot_consumption=lot_consumption,
        product_consumption=product_consumption,
        default_costs=default_costs,
        payments=payments,
    )


def apply_confirmation(plan: ConfirmationPlan, actor: str | None = None) -> ConfirmationResult:
    """Write phase. Flushes but does not commit."""
    now = utcnow()
    header = plan.header

    for lot_id, qty in plan.lot_consumption.items():
        lot = plan.lots[lot_id]
        lot.quantity_remaining -= qty
        if lot.quantity_remaining == 0:
            lot.status = LOT_STATUS_DEPLETED

    for product_id, qty in plan.product_consumption.items():
        product = plan.products[product_id]
        product.stock_on_hand -= qty
        product.default_cost_cents = plan.default_costs[product_id]

    sale = None
    if plan.kind == KIND_QUOTATION:
        sale = Sale(
            document_number=next_document_number(document_type=KIND_SALE, prefix=SALE_PREFIX),
            quotation_id=header.id,
            customer_id=header.customer_id,
            total_cents=header.total_cents,
            margin_total_cents=0,
            payment_method=header.payment_method,
            actor=actor,
            notes=header.notes,
        )
        db.session.add(sale)
        db.session.flush()

        sale_margin = 0
        for line, allocations in plan.line_allocations:
            sale_lines = materialize(
                plan.products[line.product_id],
                line.quantity,
                line.unit_price_cents,
                allocations,
                SaleLine,
                sale_id=sale.id,
            )
            db.session.add_all(sale_lines)
            sale_margin += sum(sl.margin_total_cents for sl in sale_lines)
        sale.margin_total_cents = sale_margin

        for payment in plan.payments:
            db.session.add(
                SalePayment(sale_id=sale.id, method=payment["method"], amount_cents=payment["amount_cents"])
            )

        header.sale_id = sale.id
    else:
        # Credits and withdrawals keep their own lines, re-bound one per lot
        _, line_cls, owner_column = document_models(plan.kind)
        margin = 0
        for line, allocations in plan.line_allocations:
            if line.lot_id is not None:
                margin += line.margin_total_cents
                continue
            rebound = materialize(
                plan.products[line.product_id],
                line.quantity,
                line.unit_price_cents,
                allocations,
                line_cls,
                **{owner_column: header.id},
            )
            db.session.delete(line)
            db.session.add_all(rebound)
            margin += sum(rl.margin_total_cents for rl in rebound)
        header.margin_total_cents = margin

    if plan.kind == KIND_WITHDRAWAL:
        header.cost_total_cents = sum(
            qty * plan.lots[lot_id].unit_cost_cents for lot_id, qty in plan.lot_consumption.items()
        )

    movements = []
    for lot_id, qty in plan.lot_consumption.items():
        lot = plan.lots[lot_id]
        movement = LotMovement(
            movement_type=MOVEMENT_TYPES[plan.kind],
            quotation_id=header.id if plan.kind == KIND_QUOTATION else None,
            sale_id=sale.id if sale is not None else None,
            credit_id=header.id if plan.kind == KIND_CREDIT else None,
            withdrawal_id=header.id if plan.kind == KIND_WITHDRAWAL else None,
            product_id=lot.product_id,
            lot_id=lot.id,
            quantity=qty,
            unit_cost_cents=lot.unit_cost_cents,
            lot_remaining_after=lot.quantity_remaining,
            actor=actor,
            occurred_at=now,
        )
        db.session.add(movement)
        movements.append(movement)

    header.status = STATUS_CONFIRMED
    header.confirmed_at = now

    db.session.flush()
    return ConfirmationResult(
        kind=plan.kind,
        document_id=header.id,
        sale_id=sale.id if sale is not None else None,
        movements=movements,
    )


def confirm_document(kind: str, document_id: int, actor: str | None = None) -> ConfirmationResult:
    actor = optional_text(actor, "actor", 120)

    def _op():
        begin_write_transaction()
        plan = plan_confirmation(kind, document_id)
        result = apply_confirmation(plan, actor=actor)
        db.session.commit()

        current_app.logger.info(
            "Confirmed %s %s: %s lot movement(s), sale=%s",
            kind, document_id, len(result.movements), result.sale_id,
        )
        return result

    return run_with_retry(_op)


def confirm_quotation(quotation_id: int, actor: str | None = None) -> ConfirmationResult:
    """Confirm a DRAFT or PENDING quotation into a Sale."""
    return confirm_document(KIND_QUOTATION, quotation_id, actor=actor)


def confirm_credit(credit_id: int, actor: str | None = None) -> ConfirmationResult:
    """Confirm a DRAFT or PENDING credit; its total joins the customer's balance."""
    return confirm_document(KIND_CREDIT, credit_id, actor=actor)
