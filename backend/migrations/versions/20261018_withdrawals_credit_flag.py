"""Stock withdrawals and the customer credit flag

Revision ID: 20261018_withdrawals
Revises: 20261018_initial
Create Date: 2026-10-18

Adds:
1. customers.credit_enabled (existing customers start without credit)
2. stock_withdrawals / stock_withdrawal_lines
3. lot_movements.withdrawal_id
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_withdrawals"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("credit_enabled", sa.Boolean(), nullable=False, server_default=sa.false())
        )

    op.create_table(
        "stock_withdrawals",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("margin_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cost_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("actor", sa.String(120), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_number", name="uq_stock_withdrawals_docnum"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_withdrawals", schema=None) as batch_op:
        batch_op.create_index("ix_stock_withdrawals_status", ["status"], unique=False)
        batch_op.create_index("ix_stock_withdrawals_created", ["created_at"], unique=False)

    op.create_table(
        "stock_withdrawal_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("lot_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_margin_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("margin_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("withdrawal_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["lot_id"], ["lots.id"]),
        sa.ForeignKeyConstraint(["withdrawal_id"], ["stock_withdrawals.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_withdrawal_lines", schema=None) as batch_op:
        batch_op.create_index("ix_stock_withdrawal_lines_withdrawal_id", ["withdrawal_id"], unique=False)
        batch_op.create_index("ix_stock_withdrawal_lines_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_withdrawal_lines_lot_id", ["lot_id"], unique=False)

    with op.batch_alter_table("lot_movements", schema=None) as batch_op:
        batch_op.add_column(sa.Column("withdrawal_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            "fk_lot_movements_withdrawal",
            "stock_withdrawals",
            ["withdrawal_id"],
            ["id"],
        )
        batch_op.create_index("ix_lot_movements_withdrawal_id", ["withdrawal_id"], unique=False)


def downgrade():
    with op.batch_alter_table("lot_movements", schema=None) as batch_op:
        batch_op.drop_index("ix_lot_movements_withdrawal_id")
        batch_op.drop_constraint("fk_lot_movements_withdrawal", type_="foreignkey")
        batch_op.drop_column("withdrawal_id")

    op.drop_table("stock_withdrawal_lines")
    op.drop_table("stock_withdrawals")

    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.drop_column("credit_enabled")
