# Overview: Manual stock withdrawals (damage, internal use); the third consumer of the lot ledger.

"""
Stock withdrawal

withdraw_stock() writes a StockWithdrawal header with one unbound line and
confirms it in the same transaction, through the same plan/apply phases
as quotations and credits: FIFO allocation, lot and product decrements,
default cost recomputation and one WITHDRAWAL movement per lot. Nothing is
sold, so the line price is 0 and the header margin is minus the cost.

A failed withdrawal (unknown product, not enough stock) leaves no header,
no line and no consumed document number.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..models import Product, StockWithdrawal, StockWithdrawalLine
from ..models.documents import KIND_WITHDRAWAL, STATUS_DRAFT
from ..validation import ValidationError, coerce_quantity, optional_text, require_id
from .concurrency import begin_write_transaction, run_with_retry
from .confirmation_service import ConfirmationResult, apply_confirmation, plan_confirmation
from .document_service import DOCUMENT_PREFIXES, next_document_number


def withdraw_stock(product_id, quantity, reason, actor: str | None = None) -> ConfirmationResult:
    """Take quantity units of a product out of stock, oldest lots first."""
    product_id = require_id(product_id, "product_id")
    quantity = coerce_quantity(quantity)
    reason = optional_text(reason, "reason", 255)
    if reason is None:
        raise ValidationError("reason is required")
    actor = optional_text(actor, "actor", 120)

    def _op():
        begin_write_transaction()
        if db.session.get(Product, product_id) is None:
            raise NotFoundError("Product", product_id)

        withdrawal = StockWithdrawal(
            document_number=next_document_number(
                document_type=KIND_WITHDRAWAL, prefix=DOCUMENT_PREFIXES[KIND_WITHDRAWAL]
            ),
            status=STATUS_DRAFT,
            total_cents=0,
            margin_total_cents=0,
            cost_total_cents=0,
            reason=reason,
            actor=actor,
        )
        db.session.add(withdrawal)
        db.session.flush()

        db.session.add(StockWithdrawalLine(
            withdrawal_id=withdrawal.id,
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=0,
            subtotal_cents=0,
            unit_cost_cents=0,
            unit_margin_cents=0,
            margin_total_cents=0,
        ))
        db.session.flush()

        plan = plan_confirmation(KIND_WITHDRAWAL, withdrawal.id)
        result = apply_confirmation(plan, actor=actor)
        db.session.commit()

        current_app.logger.info(
            "Withdrew %s unit(s) of product %s as %s (cost %s): %s",
            quantity, product_id, withdrawal.document_number, withdrawal.cost_total_cents, reason,
        )
        return result

    return run_with_retry(_op)


def list_withdrawals(*, product_id: int | None = None, limit: int = 50) -> list[StockWithdrawal]:
    """Most recent withdrawals first, optionally those that touched one product."""
    query = db.session.query(StockWithdrawal)
    if product_id is not None:
        query = query.filter(
            StockWithdrawal.lines.any(StockWithdrawalLine.product_id == product_id)
        )
    return query.order_by(StockWithdrawal.id.desc()).limit(limit).all()
