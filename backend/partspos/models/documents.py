from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from partspos.time_utils import to_utc_z


# Document kinds (also used as line-item owners and sequence keys)
KIND_QUOTATION = "QUOTATION"
KIND_CREDIT = "CREDIT"
KIND_SALE = "SALE"
KIND_WITHDRAWAL = "WITHDRAWAL"

# Quotation / credit lifecycle (transition table lives in services.lifecycle_service)
STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELLED = "CANCELLED"

SALE_STATUS_COMPLETED = "COMPLETED"


class LineItemMixin:
    """
    Shared columns of quotation, credit and sale lines.

    A line is bound to one product and, once resolved, one lot. Money fields
    are derived at materialization time:
        subtotal_cents     = quantity * unit_price_cents
        unit_margin_cents  = unit_price_cents - unit_cost_cents
        margin_total_cents = quantity * unit_margin_cents
    """

    id = db.Column(db.Integer, primary_key=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    # Copied from the bound lot; 0 until resolved
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_margin_cents = db.Column(db.Integer, nullable=False, default=0)
    margin_total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @declared_attr
    def product_id(cls):
        return db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    @declared_attr
    def lot_id(cls):
        return db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=True, index=True)

    @declared_attr
    def product(cls):
        return db.relationship("Product")

    @declared_attr
    def lot(cls):
        return db.relationship("Lot")

    def line_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_id": self.lot_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_margin_cents": self.unit_margin_cents,
            "margin_total_cents": self.margin_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class Quotation(db.Model):
    """
    Priced proposal to a customer.

    total_cents / margin_total_cents are running accumulators: every line
    add/edit/delete applies its signed delta in the same transaction.
    Confirming a quotation creates a Sale and consumes lot stock.
    """
    __tablename__ = "quotations"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_quotations_docnum"),
        db.Index("ix_quotations_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    margin_total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Single tender, or "MIXED" with payment_plan listing each tender
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    payment_plan = db.Column(db.JSON, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    vehicle_plate = db.Column(db.String(32), nullable=True)
    created_by = db.Column(db.String(120), nullable=True)

    # Set on confirmation (plain id; sales.quotation_id holds the foreign key)
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "customer_id": self.customer_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "margin_total_cents": self.margin_total_cents,
            "payment_method": self.payment_method,
            "payment_plan": self.payment_plan,
            "notes": self.notes,
            "vehicle_plate": self.vehicle_plate,
            "created_by": self.created_by,
            "sale_id": self.sale_id,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class QuotationLine(LineItemMixin, db.Model):
    __tablename__ = "quotation_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, index=True)

    quotation = db.relationship("Quotation", backref=db.backref("lines", lazy=True, order_by="QuotationLine.id"))

    def to_dict(self) -> dict:
        data = self.line_dict()
        data["quotation_id"] = self.quotation_id
        return data


class Credit(db.Model):
    """
    Goods delivered on account.

    Same accumulator rules as Quotation. Confirming a credit consumes lot
    stock and adds total_cents to the customer's outstanding balance until
    the credit is settled (settled_at set by the payment reconciler).
    """
    __tablename__ = "credits"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_credits_docnum"),
        db.Index("ix_credits_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    margin_total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(db.String(120), nullable=True)

    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("credits", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "customer_id": self.customer_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "margin_total_cents": self.margin_total_cents,
            "notes": self.notes,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "created_by": self.created_by,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class CreditLine(LineItemMixin, db.Model):
    __tablename__ = "credit_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=False, index=True)

    credit = db.relationship("Credit", backref=db.backref("lines", lazy=True, order_by="CreditLine.id"))

    def to_dict(self) -> dict:
        data = self.line_dict()
        data["credit_id"] = self.credit_id
        return data


class Sale(db.Model):
    """
    Completed sale, created only by confirming a quotation.

    Totals are derived from the materialized lines inside the confirmation
    transaction; a sale is never edited afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_sales_docnum"),
        db.Index("ix_sales_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    margin_total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    actor = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    quotation = db.relationship("Quotation", foreign_keys=[quotation_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "quotation_id": self.quotation_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "margin_total_cents": self.margin_total_cents,
            "payment_method": self.payment_method,
            "actor": self.actor,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(LineItemMixin, db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))

    def to_dict(self) -> dict:
        data = self.line_dict()
        data["sale_id"] = self.sale_id
        return data


class SalePayment(db.Model):
    """One tender of a sale's payment split, written by confirmation."""
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences (COT-0001, CRE-0001, V-0001, SAL-0001).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class StockWithdrawal(db.Model):
    """
    Manual stock withdrawal (damage, internal use, adjustments).

    Created and confirmed in one transaction by
    withdrawal_service.withdraw_stock; it never exists in DRAFT outside
    that transaction. total_cents is always 0 (nothing is sold), so
    margin_total_cents is minus the withdrawn cost.
    """
    __tablename__ = "stock_withdrawals"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_stock_withdrawals_docnum"),
        db.Index("ix_stock_withdrawals_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    margin_total_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_total_cents = db.Column(db.Integer, nullable=False, default=0)

    reason = db.Column(db.String(255), nullable=False)
    actor = db.Column(db.String(120), nullable=True)

    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "status": self.status,
            "total_cents": self.total_cents,
            "margin_total_cents": self.margin_total_cents,
            "cost_total_cents": self.cost_total_cents,
            "reason": self.reason,
            "actor": self.actor,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockWithdrawalLine(LineItemMixin, db.Model):
    __tablename__ = "stock_withdrawal_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    withdrawal_id = db.Column(db.Integer, db.ForeignKey("stock_withdrawals.id"), nullable=False, index=True)

    withdrawal = db.relationship(
        "StockWithdrawal", backref=db.backref("lines", lazy=True, order_by="StockWithdrawalLine.id")
    )

    def to_dict(self) -> dict:
        data = self.line_dict()
        data["withdrawal_id"] = self.withdrawal_id
        return data
