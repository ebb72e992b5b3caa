# Overview: Customer credit balance, installment payments (abonos) and automatic settlement.

"""
Credit/Payment Reconciler

    outstanding = Σ total_cents of CONFIRMED credits without settled_at
                - Σ amount_cents of payments not in {PROCESSED, SETTLED, CANCELLED}

clamped at 0. The balance is never stored; it is recomputed on every read
so it cannot drift from the documents it is derived from.

When a payment brings the balance to 0, every open confirmed credit of the
customer is stamped settled_at and every ACTIVE payment becomes PROCESSED,
in the same transaction as the payment itself.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import LifecycleError, NotFoundError
from ..models import Credit, CreditPayment, Customer
from ..models.customers import (
    EXCLUDED_PAYMENT_STATUSES,
    PAYMENT_STATUS_ACTIVE,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_PROCESSED,
)
from ..models.documents import STATUS_CONFIRMED
from ..validation import ValidationError, coerce_cents, optional_text
from partspos.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import VALID_PAYMENT_METHODS


def _require_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer", customer_id)
    return customer


def _open_credits_query(customer_id: int):
    return db.session.query(Credit).filter(
        Credit.customer_id == customer_id,
        Credit.status == STATUS_CONFIRMED,
        Credit.settled_at.is_(None),
    )


def _counting_payments_query(customer_id: int):
    return db.session.query(CreditPayment).filter(
        CreditPayment.customer_id == customer_id,
        CreditPayment.status.notin_(EXCLUDED_PAYMENT_STATUSES),
    )


def invoiced_total(customer_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Credit.total_cents), 0))
        .filter(
            Credit.customer_id == customer_id,
            Credit.status == STATUS_CONFIRMED,
            Credit.settled_at.is_(None),
        )
        .scalar()
    )
    return int(total or 0)


def paid_total(customer_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(CreditPayment.amount_cents), 0))
        .filter(
            CreditPayment.customer_id == customer_id,
            CreditPayment.status.notin_(EXCLUDED_PAYMENT_STATUSES),
        )
        .scalar()
    )
    return int(total or 0)


def outstanding_balance(customer_id: int) -> int:
    """Current amount the customer owes, in cents. Never negative."""
    _require_customer(customer_id)
    return max(invoiced_total(customer_id) - paid_total(customer_id), 0)


def customer_statement(customer_id: int) -> dict:
    """Balance together with the open credits and counting payments behind it."""
    customer = _require_customer(customer_id)
    credits = _open_credits_query(customer_id).order_by(Credit.confirmed_at, Credit.id).all()
    payments = _counting_payments_query(customer_id).order_by(CreditPayment.paid_at, CreditPayment.id).all()

    invoiced = sum(c.total_cents for c in credits)
    paid = sum(p.amount_cents for p in payments)
    return {
        "customer": customer.to_dict(),
        "invoiced_cents": invoiced,
        "paid_cents": paid,
        "outstanding_cents": max(invoiced - paid, 0),
        "credits": [c.to_dict() for c in credits],
        "payments": [p.to_dict() for p in payments],
    }


def _settle(customer_id: int, now) -> tuple[int, int]:
    credits = lock_for_update(_open_credits_query(customer_id)).all()
    for credit in credits:
        credit.settled_at = now

    payments = lock_for_update(
        db.session.query(CreditPayment).filter(
            CreditPayment.customer_id == customer_id,
            CreditPayment.status == PAYMENT_STATUS_ACTIVE,
        )
    ).all()
    for payment in payments:
        payment.status = PAYMENT_STATUS_PROCESSED
        payment.processed_at = now

    return len(credits), len(payments)


def register_payment(
    customer_id: int,
    amount_cents,
    method: str | None = None,
    actor: str | None = None,
    note: str | None = None,
) -> CreditPayment:
    """
    Record an installment against the customer's balance.

    amount must be > 0 and may not exceed the current balance. A payment that
    clears the balance settles the customer's open credits.
    """
    amount = coerce_cents(amount_cents, "amount_cents")
    method = (method or "CASH").strip().upper()
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}")
    actor = optional_text(actor, "actor", 120)
    note = optional_text(note, "note", 255)

    def _op():
        begin_write_transaction()
        lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        balance = outstanding_balance(customer_id)

        if balance == 0:
            raise ValidationError(
                f"Customer {customer_id} has no outstanding balance",
                details={"customer_id": customer_id, "outstanding_cents": 0},
            )
        if amount > balance:
            raise ValidationError(
                f"Payment {amount} exceeds outstanding balance {balance}",
                details={"customer_id": customer_id, "amount_cents": amount, "outstanding_cents": balance},
            )

        now = utcnow()
        payment = CreditPayment(
            customer_id=customer_id,
            amount_cents=amount,
            method=method,
            status=PAYMENT_STATUS_ACTIVE,
            paid_at=now,
            actor=actor,
            note=note,
        )
        db.session.add(payment)
        db.session.flush()

        if amount == balance:
            credits, payments = _settle(customer_id, now)
            current_app.logger.info(
                "Customer %s settled: %s credit(s) closed, %s payment(s) processed",
                customer_id, credits, payments,
            )

        db.session.commit()
        return payment

    return run_with_retry(_op)


def cancel_payment(payment_id: int, reason: str | None = None) -> CreditPayment:
    """ACTIVE -> CANCELLED. Processed payments belong to a settlement and stay."""
    reason = optional_text(reason, "reason", 255)

    def _op():
        payment = lock_for_update(db.session.query(CreditPayment).filter_by(id=payment_id)).first()
        if payment is None:
            raise NotFoundError("CreditPayment", payment_id)
        if payment.status != PAYMENT_STATUS_ACTIVE:
            raise LifecycleError(
                f"Only ACTIVE payments can be cancelled (payment {payment_id} is {payment.status})",
                details={"id": payment_id, "status": payment.status},
            )

        payment.status = PAYMENT_STATUS_CANCELLED
        payment.cancelled_at = utcnow()
        if reason:
            payment.note = reason
        db.session.commit()

        current_app.logger.info("Cancelled credit payment %s of customer %s", payment_id, payment.customer_id)
        return payment

    return run_with_retry(_op)
