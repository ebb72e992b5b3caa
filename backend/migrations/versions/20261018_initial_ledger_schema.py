"""Initial schema: products, lots, quotations, credits, sales, payments, lot movements

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

Creates:
1. customers, products, lots (FIFO intake batches)
2. quotations / quotation_lines, credits / credit_lines
3. sales / sale_lines / sale_payments (written only by confirmation)
4. credit_payments (abonos)
5. lot_movements (append-only consumption ledger)
6. document_sequences
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def _line_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("lot_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_margin_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("margin_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["lot_id"], ["lots.id"]),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade():
    # ==========================================================================
    # 1. CUSTOMERS, PRODUCTS, LOTS
    # ==========================================================================
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("document_number", sa.String(32), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number", name="uq_customers_document_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_name", ["name"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("brand", sa.String(120), nullable=True),
        sa.Column("color", sa.String(64), nullable=True),
        sa.Column("size", sa.String(64), nullable=True),
        sa.Column("location", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stock_on_hand", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("default_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("default_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_products_code"),
        sa.CheckConstraint("stock_on_hand >= 0", name="chk_products_stock_non_negative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name", ["name"], unique=False)

    op.create_table(
        "lots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("lot_number", sa.String(64), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False),
        sa.Column("quantity_remaining", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "lot_number", name="uq_lots_product_number"),
        sa.CheckConstraint("quantity_received > 0", name="chk_lots_received_gt_zero"),
        sa.CheckConstraint("quantity_remaining >= 0", name="chk_lots_remaining_non_negative"),
        sa.CheckConstraint("quantity_remaining <= quantity_received", name="chk_lots_remaining_lte_received"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("lots", schema=None) as batch_op:
        batch_op.create_index("ix_lots_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_lots_status", ["status"], unique=False)
        batch_op.create_index("ix_lots_product_status_received", ["product_id", "status", "received_at"], unique=False)

    # ==========================================================================
    # 2. QUOTATIONS AND CREDITS
    # ==========================================================================
    op.create_table(
        "quotations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("margin_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="CASH"),
        sa.Column("payment_plan", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("vehicle_plate", sa.String(32), nullable=True),
        sa.Column("created_by", sa.String(120), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number", name="uq_quotations_docnum"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("quotations", schema=None) as batch_op:
        batch_op.create_index("ix_quotations_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_quotations_status", ["status"], unique=False)
        batch_op.create_index("ix_quotations_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_quotations_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "credits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("margin_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("created_by", sa.String(120), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number", name="uq_credits_docnum"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("credits", schema=None) as batch_op:
        batch_op.create_index("ix_credits_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_credits_status", ["status"], unique=False)
        batch_op.create_index("ix_credits_settled_at", ["settled_at"], unique=False)
        batch_op.create_index("ix_credits_customer_status", ["customer_id", "status"], unique=False)

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("quotation_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="COMPLETED"),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("margin_total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("actor", sa.String(120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["quotation_id"], ["quotations.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number", name="uq_sales_docnum"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_quotation_id", ["quotation_id"], unique=False)
        batch_op.create_index("ix_sales_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_sales_status", ["status"], unique=False)
        batch_op.create_index("ix_sales_created", ["created_at"], unique=False)

    # ==========================================================================
    # 4. LINE ITEMS
    # ==========================================================================
    for table, owner, owner_table in (
        ("quotation_lines", "quotation_id", "quotations"),
        ("credit_lines", "credit_id", "credits"),
        ("sale_lines", "sale_id", "sales"),
    ):
        op.create_table(
            table,
            *_line_columns(),
            sa.Column(owner, sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint([owner], [f"{owner_table}.id"]),
            sqlite_autoincrement=True,
        )
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table}_{owner}", [owner], unique=False)
            batch_op.create_index(f"ix_{table}_product_id", ["product_id"], unique=False)
            batch_op.create_index(f"ix_{table}_lot_id", ["lot_id"], unique=False)

    # ==========================================================================
    # 5. PAYMENTS
    # ==========================================================================
    op.create_table(
        "sale_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="COMPLETED"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_payments", schema=None) as batch_op:
        batch_op.create_index("ix_sale_payments_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_payments_method", ["method"], unique=False)
        batch_op.create_index("ix_sale_payments_status", ["status"], unique=False)

    op.create_table(
        "credit_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("paid_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("actor", sa.String(120), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents > 0", name="chk_credit_payments_amount_gt_zero"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("credit_payments", schema=None) as batch_op:
        batch_op.create_index("ix_credit_payments_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_credit_payments_status", ["status"], unique=False)
        batch_op.create_index("ix_credit_payments_customer_status", ["customer_id", "status"], unique=False)

    # ==========================================================================
    # 6. LOT MOVEMENTS AND SEQUENCES
    # ==========================================================================
    op.create_table(
        "lot_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quotation_id", sa.Integer(), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("credit_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("lot_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("lot_remaining_after", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(120), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["quotation_id"], ["quotations.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["credit_id"], ["credits.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["lot_id"], ["lots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="chk_lot_movements_qty_gt_zero"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("lot_movements", schema=None) as batch_op:
        batch_op.create_index("ix_lot_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_lot_movements_quotation_id", ["quotation_id"], unique=False)
        batch_op.create_index("ix_lot_movements_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_lot_movements_credit_id", ["credit_id"], unique=False)
        batch_op.create_index("ix_lot_movements_lot_occurred", ["lot_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_lot_movements_product_occurred", ["product_id", "occurred_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("document_sequences")
    op.drop_table("lot_movements")
    op.drop_table("credit_payments")
    op.drop_table("sale_payments")
    op.drop_table("sale_lines")
    op.drop_table("credit_lines")
    op.drop_table("quotation_lines")
    op.drop_table("sales")
    op.drop_table("credits")
    op.drop_table("quotations")
    op.drop_table("lots")
    op.drop_table("products")
    op.drop_table("customers")
