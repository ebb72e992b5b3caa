from __future__ import annotations

from ..extensions import db
from partspos.time_utils import to_utc_z


PAYMENT_STATUS_ACTIVE = "ACTIVE"
PAYMENT_STATUS_PROCESSED = "PROCESSED"
PAYMENT_STATUS_SETTLED = "SETTLED"
PAYMENT_STATUS_CANCELLED = "CANCELLED"

# Payments in these states no longer reduce the live balance (kept for history)
EXCLUDED_PAYMENT_STATUSES = (
    PAYMENT_STATUS_PROCESSED,
    PAYMENT_STATUS_SETTLED,
    PAYMENT_STATUS_CANCELLED,
)


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_customers_document_number"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    # National id (DNI) or tax id
    document_number = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Only customers with credit enabled may receive credits
    credit_enabled = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "document_number": self.document_number,
            "phone": self.phone,
            "is_active": self.is_active,
            "credit_enabled": self.credit_enabled,
            "created_at": to_utc_z(self.created_at),
        }


class CreditPayment(db.Model):
    """
    Installment paid against a customer's credit balance.

    STATES:
    - ACTIVE:    counts against the outstanding balance
    - PROCESSED: consumed by a full settlement
    - SETTLED:   closed outside the reconciler (never set here), kept for history
    - CANCELLED: reversed; never counts again
    """
    __tablename__ = "credit_payments"
    __table_args__ = (
        db.Index("ix_credit_payments_customer_status", "customer_id", "status"),
        db.CheckConstraint("amount_cents > 0", name="chk_credit_payments_amount_gt_zero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_ACTIVE, index=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(120), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("credit_payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at),
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "note": self.note,
            "actor": self.actor,
            "version_id": self.version_id,
        }
