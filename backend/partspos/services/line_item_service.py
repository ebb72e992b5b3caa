# Overview: Line-item materialization and editing for quotations and credits; keeps header totals in step.

"""
Line-Item Materializer and Editor

One "add product X, qty N" action expands into one line per lot touched,
all at the same unit price, each carrying its lot's cost. Every add, edit
or removal applies its signed delta to the header's total_cents and
margin_total_cents in the same transaction, so

    header.total_cents        == Σ line.subtotal_cents
    header.margin_total_cents == Σ line.margin_total_cents

holds after every commit. reconcile_totals() recomputes from lines and
reports (optionally repairs) any drift.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError
from ..models import Lot, Product
from ..models.documents import KIND_CREDIT, KIND_QUOTATION
from ..validation import ValidationError, coerce_cents, coerce_quantity, require_id
from .concurrency import run_with_retry
from .document_service import document_models, load_document, load_lines
from .fifo_service import select_lots, usable_quantity
from .lifecycle_service import require_editable


def compute_line_amounts(quantity: int, unit_price_cents: int, unit_cost_cents: int) -> dict:
    unit_margin = unit_price_cents - unit_cost_cents
    return {
        "subtotal_cents": quantity * unit_price_cents,
        "unit_margin_cents": unit_margin,
        "margin_total_cents": quantity * unit_margin,
    }


def materialize(product, total_quantity: int, unit_price_cents: int, allocations, line_cls, **owner) -> list:
    """
    Build (unsaved) line items for an allocation, one per lot.

    owner is the line's parent column, e.g. quotation_id=7.
    """
    allocated = sum(a.quantity for a in allocations)
    if allocated != total_quantity:
        raise ValidationError(
            f"Allocation covers {allocated} units but {total_quantity} were requested",
            details={"product_id": product.id, "allocated": allocated, "requested": total_quantity},
        )

    lines = []
    for allocation in allocations:
        amounts = compute_line_amounts(allocation.quantity, unit_price_cents, allocation.unit_cost_cents)
        lines.append(
            line_cls(
                product_id=product.id,
                lot_id=allocation.lot_id,
                quantity=allocation.quantity,
                unit_price_cents=unit_price_cents,
                unit_cost_cents=allocation.unit_cost_cents,
                **amounts,
                **owner,
            )
        )
    return lines


def apply_header_delta(header, subtotal_delta: int, margin_delta: int) -> None:
    header.total_cents = (header.total_cents or 0) + subtotal_delta
    header.margin_total_cents = (header.margin_total_cents or 0) + margin_delta


def resolve_unit_price(product: Product, unit_price_cents) -> int:
    """Explicit price, else the product's default; never below the product minimum."""
    if unit_price_cents is None:
        if not product.default_price_cents:
            raise ValidationError(
                f"unit_price_cents is required: product {product.id} has no default price"
            )
        price = product.default_price_cents
    else:
        price = coerce_cents(unit_price_cents, "unit_price_cents")

    if product.min_price_cents and price < product.min_price_cents:
        raise ValidationError(
            f"Price {price} is below the minimum {product.min_price_cents} for product {product.id}",
            details={
                "product_id": product.id,
                "unit_price_cents": price,
                "min_price_cents": product.min_price_cents,
            },
        )
    return price


def consumed_by_document(kind: str, document_id: int, *, exclude_line_id: int | None = None) -> dict[int, int]:
    """Units already claimed per lot by this document's bound lines."""
    consumed: dict[int, int] = {}
    for line in load_lines(kind, document_id):
        if line.lot_id is None or line.id == exclude_line_id:
            continue
        consumed[line.lot_id] = consumed.get(line.lot_id, 0) + line.quantity
    return consumed


def _load_line(kind: str, document_id: int, line_id: int):
    _, line_cls, owner_column = document_models(kind)
    line = (
        db.session.query(line_cls)
        .filter(line_cls.id == line_id, getattr(line_cls, owner_column) == document_id)
        .first()
    )
    if line is None:
        raise NotFoundError(line_cls.__name__, line_id)
    return line


def add_product(kind: str, document_id: int, product_id, quantity, unit_price_cents=None) -> list:
    """
    Add a product to a DRAFT or PENDING document.

    Lots already claimed by earlier lines of the same document are taken
    into account, so two adds of the same product walk the FIFO queue
    instead of double-booking its head.
    """
    product_id = require_id(product_id, "product_id")
    qty = coerce_quantity(quantity)

    def _op():
        header = load_document(kind, document_id, lock=True)
        require_editable(header)

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product_id} is inactive")

        price = resolve_unit_price(product, unit_price_cents)
        allocations = select_lots(product_id, qty, consumed=consumed_by_document(kind, document_id))

        _, line_cls, owner_column = document_models(kind)
        lines = materialize(product, qty, price, allocations, line_cls, **{owner_column: document_id})
        db.session.add_all(lines)

        apply_header_delta(
            header,
            sum(line.subtotal_cents for line in lines),
            sum(line.margin_total_cents for line in lines),
        )
        db.session.commit()
        return lines

    return run_with_retry(_op)


def update_line(kind: str, document_id: int, line_id: int, quantity=None, unit_price_cents=None):
    """
    Change quantity and/or price of one line, keeping its bound lot.

    The new quantity may not exceed what the lot has left after the other
    lines of this document that draw on it.
    """
    if quantity is None and unit_price_cents is None:
        raise ValidationError("quantity or unit_price_cents is required")
    new_qty = coerce_quantity(quantity) if quantity is not None else None

    def _op():
        header = load_document(kind, document_id, lock=True)
        require_editable(header)
        line = _load_line(kind, document_id, line_id)

        qty = new_qty if new_qty is not None else line.quantity
        if unit_price_cents is None:
            price = line.unit_price_cents
        else:
            price = resolve_unit_price(line.product, unit_price_cents)

        if line.lot_id is not None and new_qty is not None:
            lot = db.session.get(Lot, line.lot_id)
            others = consumed_by_document(kind, document_id, exclude_line_id=line.id)
            available = usable_quantity(lot, others)
            if qty > available:
                raise InsufficientStockError(
                    product_id=line.product_id,
                    lot_id=line.lot_id,
                    requested=qty,
                    available=available,
                )

        old_subtotal = line.subtotal_cents
        old_margin = line.margin_total_cents

        amounts = compute_line_amounts(qty, price, line.unit_cost_cents)
        line.quantity = qty
        line.unit_price_cents = price
        line.subtotal_cents = amounts["subtotal_cents"]
        line.unit_margin_cents = amounts["unit_margin_cents"]
        line.margin_total_cents = amounts["margin_total_cents"]

        apply_header_delta(
            header,
            line.subtotal_cents - old_subtotal,
            line.margin_total_cents - old_margin,
        )
        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_line(kind: str, document_id: int, line_id: int):
    """Delete one line and subtract its amounts from the header."""
    def _op():
        header = load_document(kind, document_id, lock=True)
        require_editable(header)
        line = _load_line(kind, document_id, line_id)

        apply_header_delta(header, -line.subtotal_cents, -line.margin_total_cents)
        db.session.delete(line)
        db.session.commit()
        return header

    return run_with_retry(_op)


def reconcile_totals(kind: str, document_id: int, fix: bool = False) -> dict:
    """Compare header accumulators with Σ lines; with fix=True, overwrite the header."""
    def _op():
        header = load_document(kind, document_id, lock=fix)
        lines = load_lines(kind, document_id)

        computed_total = sum(line.subtotal_cents for line in lines)
        computed_margin = sum(line.margin_total_cents for line in lines)
        drift = (
            header.total_cents != computed_total
            or header.margin_total_cents != computed_margin
        )

        report = {
            "kind": kind,
            "id": header.id,
            "document_number": header.document_number,
            "status": header.status,
            "stored_total_cents": header.total_cents,
            "computed_total_cents": computed_total,
            "stored_margin_total_cents": header.margin_total_cents,
            "computed_margin_total_cents": computed_margin,
            "drift": drift,
            "fixed": False,
        }

        if drift and fix:
            current_app.logger.warning(
                "Repairing %s %s totals: total %s -> %s, margin %s -> %s",
                kind, header.id,
                header.total_cents, computed_total,
                header.margin_total_cents, computed_margin,
            )
            header.total_cents = computed_total
            header.margin_total_cents = computed_margin
            db.session.commit()
            report["fixed"] = True
        return report

    return run_with_retry(_op)


def reconcile_all_totals(fix: bool = False) -> list[dict]:
    """Reconcile every quotation and credit; returns only the drifted reports."""
    drifted = []
    for kind in (KIND_QUOTATION, KIND_CREDIT):
        header_cls, _, _ = document_models(kind)
        ids = [row.id for row in db.session.query(header_cls.id).order_by(header_cls.id).all()]
        for document_id in ids:
            report = reconcile_totals(kind, document_id, fix=fix)
            if report["drift"]:
                drifted.append(report)
    return drifted
