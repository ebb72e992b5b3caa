# Overview: Status machine for quotations and credits; save (DRAFT -> PENDING) and cancel operations.

"""
Quotation / Credit Lifecycle

STATE MACHINE:
    DRAFT -> PENDING -> CONFIRMED
      |        |
      |        +-----> CANCELLED
      +--------------> CONFIRMED

    DRAFT:     being built, lines editable, no stock effect
    PENDING:   saved for the customer, lines still editable, no stock effect
    CONFIRMED: stock consumed (terminal, immutable)
    CANCELLED: abandoned, no stock effect (terminal)

RULES:
1. CONFIRMED and CANCELLED are terminal
2. Only DRAFT and PENDING documents accept line edits
3. Confirmation is the only transition that touches stock; it lives in
   confirmation_service and checks this table before writing
"""

from __future__ import annotations

from ..extensions import db
from ..errors import LifecycleError
from ..models.documents import (
    KIND_CREDIT,
    KIND_QUOTATION,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_DRAFT,
    STATUS_PENDING,
)
from ..validation import ValidationError, optional_text
from partspos.time_utils import utcnow
from .concurrency import run_with_retry
from .document_service import load_document, load_lines, normalize_payment_plan


VALID_STATUSES = {STATUS_DRAFT, STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED}

ALLOWED_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_PENDING, STATUS_CONFIRMED},
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_CANCELLED},
    STATUS_CONFIRMED: set(),
    STATUS_CANCELLED: set(),
}

EDITABLE_STATUSES = {STATUS_DRAFT, STATUS_PENDING}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(current_status: str, target_status: str) -> bool:
    validate_status(current_status)
    validate_status(target_status)
    return target_status in ALLOWED_TRANSITIONS[current_status]


def require_transition(header, target_status: str) -> None:
    """Raise LifecycleError unless header may move to target_status."""
    if not can_transition(header.status, target_status):
        raise LifecycleError(
            f"Cannot transition {type(header).__name__} {header.id} from {header.status} to {target_status}",
            details={
                "id": header.id,
                "current_status": header.status,
                "target_status": target_status,
            },
        )


def require_editable(header) -> None:
    if header.status not in EDITABLE_STATUSES:
        raise LifecycleError(
            f"{type(header).__name__} {header.id} is {header.status} and can no longer be edited",
            details={"id": header.id, "status": header.status},
        )


def save_document(
    kind: str,
    document_id: int,
    *,
    payment_method: str | None = None,
    payment_plan=None,
    notes: str | None = None,
    due_date=None,
):
    """
    DRAFT -> PENDING.

    Quotations record their tender choice here (single method, or MIXED with
    a per-tender plan). Credits may record a due date. The plan total is
    re-checked against the document total at confirmation, since lines stay
    editable while PENDING.
    """
    if kind == KIND_QUOTATION:
        method, plan = normalize_payment_plan(payment_method, payment_plan)
    elif payment_method is not None or payment_plan is not None:
        raise ValidationError("Credits do not take a payment method")

    def _op():
        header = load_document(kind, document_id, lock=True)
        require_transition(header, STATUS_PENDING)

        if not load_lines(kind, document_id):
            raise ValidationError(f"Cannot save {type(header).__name__} {document_id} with no lines")

        if kind == KIND_QUOTATION:
            header.payment_method = method
            header.payment_plan = plan
        if kind == KIND_CREDIT and due_date is not None:
            header.due_date = due_date
        if notes is not None:
            header.notes = notes

        header.status = STATUS_PENDING
        db.session.commit()
        return header

    return run_with_retry(_op)


def cancel_document(kind: str, document_id: int, reason: str | None = None):
    """PENDING -> CANCELLED. No stock effect."""
    reason = optional_text(reason, "reason", 255)

    def _op():
        header = load_document(kind, document_id, lock=True)
        require_transition(header, STATUS_CANCELLED)

        header.status = STATUS_CANCELLED
        header.cancelled_at = utcnow()
        header.cancel_reason = reason
        db.session.commit()
        return header

    return run_with_retry(_op)


def save_quotation(quotation_id: int, *, payment_method=None, payment_plan=None, notes=None):
    return save_document(
        KIND_QUOTATION,
        quotation_id,
        payment_method=payment_method,
        payment_plan=payment_plan,
        notes=notes,
    )


def save_credit(credit_id: int, *, notes=None, due_date=None):
    return save_document(KIND_CREDIT, credit_id, notes=notes, due_date=due_date)


def cancel_quotation(quotation_id: int, reason: str | None = None):
    return cancel_document(KIND_QUOTATION, quotation_id, reason)


def cancel_credit(credit_id: int, reason: str | None = None):
    return cancel_document(KIND_CREDIT, credit_id, reason)
