# Overview: Document numbering, creation of quotation/credit headers and payment split rules.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError
from ..models import (
    Credit,
    CreditLine,
    Customer,
    DocumentSequence,
    Quotation,
    QuotationLine,
    StockWithdrawal,
    StockWithdrawalLine,
)
from ..models.documents import KIND_CREDIT, KIND_QUOTATION, KIND_WITHDRAWAL, STATUS_DRAFT
from ..validation import ValidationError, coerce_cents, optional_text, require_id
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_TRANSFER = "TRANSFER"
METHOD_YAPE = "YAPE"
METHOD_PLIN = "PLIN"
METHOD_MIXED = "MIXED"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_TRANSFER,
    METHOD_YAPE,
    METHOD_PLIN,
]


# Header model, line model and the line's owner column, per document kind
DOCUMENT_MODELS = {
    KIND_QUOTATION: (Quotation, QuotationLine, "quotation_id"),
    KIND_CREDIT: (Credit, CreditLine, "credit_id"),
    KIND_WITHDRAWAL: (StockWithdrawal, StockWithdrawalLine, "withdrawal_id"),
}

DOCUMENT_PREFIXES = {
    KIND_QUOTATION: "COT",
    KIND_CREDIT: "CRE",
    KIND_WITHDRAWAL: "SAL",
}


def document_models(kind: str):
    try:
        return DOCUMENT_MODELS[kind]
    except KeyError:
        raise ValidationError(f"Unknown document kind: {kind}")


def load_document(kind: str, document_id: int, *, lock: bool = False):
    """Fetch a quotation or credit header, optionally row-locked."""
    header_cls, _, _ = document_models(kind)
    query = db.session.query(header_cls).filter_by(id=document_id)
    if lock:
        query = lock_for_update(query)
    header = query.first()
    if header is None:
        raise NotFoundError(header_cls.__name__, document_id)
    return header


def load_lines(kind: str, document_id: int) -> list:
    _, line_cls, owner_column = document_models(kind)
    return (
        db.session.query(line_cls)
        .filter(getattr(line_cls, owner_column) == document_id)
        .order_by(line_cls.id)
        .all()
    )


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next document number for a type, inside the caller's transaction.

    The increment is rolled back together with the caller's writes, so a
    failed confirmation never burns a number.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            return f"{prefix}-{1:0{pad}d}"
        except IntegrityError:
            # Another writer created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{current - 1:0{pad}d}"


def normalize_payment_plan(payment_method: str | None, payment_plan) -> tuple[str, list[dict] | None]:
    """
    Validate a tender choice.

    Returns (payment_method, plan). A plan with more than one tender makes
    the method MIXED; a single-entry plan collapses to that tender.
    The plan total is checked against the document total at confirmation.
    """
    method = (payment_method or METHOD_CASH).strip().upper()

    if payment_plan in (None, []):
        if method not in VALID_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}"
            )
        return method, None

    if not isinstance(payment_plan, list):
        raise ValidationError("payment_plan must be a list of {method, amount_cents}")

    plan = []
    for entry in payment_plan:
        if not isinstance(entry, dict):
            raise ValidationError("payment_plan entries must be objects")
        entry_method = str(entry.get("method") or "").strip().upper()
        if entry_method not in VALID_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {entry_method}. Must be one of {VALID_PAYMENT_METHODS}"
            )
        amount = coerce_cents(entry.get("amount_cents"), "amount_cents")
        plan.append({"method": entry_method, "amount_cents": amount})

    if len(plan) == 1:
        return plan[0]["method"], None
    return METHOD_MIXED, plan


def payment_split(total_cents: int, payment_method: str, payment_plan) -> list[dict]:
    """Tenders to record for a confirmed sale."""
    if payment_plan:
        return [dict(entry) for entry in payment_plan]
    return [{"method": payment_method, "amount_cents": total_cents}]


def _require_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer", customer_id)
    return customer


def require_credit_customer(customer_id: int) -> Customer:
    """Customer that may receive credit; ValidationError when credit is disabled."""
    customer = _require_customer(customer_id)
    if not customer.credit_enabled:
        raise ValidationError(
            f"Customer {customer_id} does not have credit enabled",
            details={"customer_id": customer_id},
        )
    return customer


def create_quotation(
    *,
    customer_id: int | None = None,
    created_by: str | None = None,
    notes: str | None = None,
    vehicle_plate: str | None = None,
) -> Quotation:
    """Create a new DRAFT quotation with zero totals."""
    if customer_id is not None:
        customer_id = require_id(customer_id, "customer_id")
    created_by = optional_text(created_by, "created_by", 120)
    vehicle_plate = optional_text(vehicle_plate, "vehicle_plate", 32)

    def _op():
        if customer_id is not None:
            _require_customer(customer_id)

        quotation = Quotation(
            document_number=next_document_number(
                document_type=KIND_QUOTATION, prefix=DOCUMENT_PREFIXES[KIND_QUOTATION]
            ),
            customer_id=customer_id,
            status=STATUS_DRAFT,
            total_cents=0,
            margin_total_cents=0,
            payment_method=METHOD_CASH,
            notes=notes,
            vehicle_plate=vehicle_plate,
            created_by=created_by,
        )
        db.session.add(quotation)
        db.session.commit()
        return quotation

    return run_with_retry(_op)


def create_credit(
    *,
    customer_id: int,
    created_by: str | None = None,
    notes: str | None = None,
    due_date=None,
) -> Credit:
    """Create a new DRAFT credit for a customer."""
    customer_id = require_id(customer_id, "customer_id")
    created_by = optional_text(created_by, "created_by", 120)

    def _op():
        require_credit_customer(customer_id)

        credit = Credit(
            document_number=next_document_number(
                document_type=KIND_CREDIT, prefix=DOCUMENT_PREFIXES[KIND_CREDIT]
            ),
            customer_id=customer_id,
            status=STATUS_DRAFT,
            total_cents=0,
            margin_total_cents=0,
            notes=notes,
            due_date=due_date,
            created_by=created_by,
        )
        db.session.add(credit)
        db.session.commit()
        return credit

    return run_with_retry(_op)
