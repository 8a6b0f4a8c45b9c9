"""Initial ledger schema: catalog, stock and credit movements, sales, payments, purchases

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade():
    # Platforms (prepaid supplier accounts)
    op.create_table(
        "platforms",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("contact_name", sa.String(length=255), nullable=True),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("contact_phone", sa.String(length=64), nullable=True),
        sa.Column("credit_balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("low_balance_threshold_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("name", name="uq_platforms_name"),
        sa.CheckConstraint("credit_balance_cents >= 0", name="ck_platforms_balance_non_negative"),
    )
    op.create_index("ix_platforms_active", "platforms", ["is_active"], unique=False)

    # Digital products
    op.create_table(
        "digital_products",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False, server_default="digital-account"),
        sa.Column("duration_type", sa.String(length=16), nullable=False, server_default="1month"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_stock_alert", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_purchase_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("suggested_sell_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("platform_id", sa.String(length=64), nullable=True),
        sa.Column("platform_buying_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["platform_id"], ["platforms.id"]),
        sa.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
    )
    op.create_index("ix_products_name", "digital_products", ["name"], unique=False)
    op.create_index("ix_products_active", "digital_products", ["is_active"], unique=False)
    op.create_index("ix_digital_products_platform_id", "digital_products", ["platform_id"], unique=False)

    # Stock movement trail
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_stock", sa.Integer(), nullable=False),
        sa.Column("new_stock", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["digital_products.id"]),
        sa.CheckConstraint("new_stock >= 0", name="ck_stock_movements_new_stock_non_negative"),
        sa.CheckConstraint("new_stock = previous_stock + quantity", name="ck_stock_movements_delta"),
        sa.UniqueConstraint("product_id", "sequence", name="uq_stock_movements_product_sequence"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"], unique=False)
    op.create_index("ix_stock_movements_type", "stock_movements", ["type"], unique=False)
    op.create_index("ix_stock_movements_reference", "stock_movements", ["reference"], unique=False)
    op.create_index("ix_stock_movements_occurred_at", "stock_movements", ["occurred_at"], unique=False)
    op.create_index(
        "ix_stock_movements_product_occurred", "stock_movements", ["product_id", "occurred_at"], unique=False
    )

    # Platform credit ledger
    op.create_table(
        "platform_credit_movements",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("platform_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("previous_balance_cents", sa.Integer(), nullable=False),
        sa.Column("new_balance_cents", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=False, server_default="system"),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["platform_id"], ["platforms.id"]),
        sa.CheckConstraint("new_balance_cents >= 0", name="ck_credit_movements_balance_non_negative"),
        sa.CheckConstraint(
            "new_balance_cents = previous_balance_cents + amount_cents",
            name="ck_credit_movements_delta",
        ),
        sa.UniqueConstraint("platform_id", "sequence", name="uq_credit_movements_platform_sequence"),
    )
    op.create_index("ix_platform_credit_movements_platform_id", "platform_credit_movements", ["platform_id"], unique=False)
    op.create_index("ix_platform_credit_movements_type", "platform_credit_movements", ["type"], unique=False)
    op.create_index("ix_platform_credit_movements_reference", "platform_credit_movements", ["reference"], unique=False)
    op.create_index("ix_platform_credit_movements_occurred_at", "platform_credit_movements", ["occurred_at"], unique=False)
    op.create_index(
        "ix_credit_movements_platform_occurred",
        "platform_credit_movements",
        ["platform_id", "occurred_at"],
        unique=False,
    )

    # Sales
    op.create_table(
        "stock_sales",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("platform_id", sa.String(length=64), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.Column("platform_buying_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("profit_cents", sa.Integer(), nullable=False),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="cash"),
        sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("paid_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remaining_amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_type", sa.String(length=16), nullable=False, server_default="one-time"),
        sa.Column("subscription_duration_months", sa.Integer(), nullable=True),
        sa.Column("subscription_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(length=255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["digital_products.id"]),
        sa.ForeignKeyConstraint(["platform_id"], ["platforms.id"]),
        sa.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        sa.CheckConstraint("paid_amount_cents >= 0", name="ck_sales_paid_non_negative"),
        sa.CheckConstraint("remaining_amount_cents >= 0", name="ck_sales_remaining_non_negative"),
    )
    op.create_index("ix_stock_sales_product_id", "stock_sales", ["product_id"], unique=False)
    op.create_index("ix_stock_sales_platform_id", "stock_sales", ["platform_id"], unique=False)
    op.create_index("ix_stock_sales_sale_date", "stock_sales", ["sale_date"], unique=False)
    op.create_index("ix_stock_sales_payment_status", "stock_sales", ["payment_status"], unique=False)
    op.create_index("ix_stock_sales_subscription_end_date", "stock_sales", ["subscription_end_date"], unique=False)
    op.create_index("ix_stock_sales_status", "stock_sales", ["status"], unique=False)
    op.create_index("ix_sales_product_date", "stock_sales", ["product_id", "sale_date"], unique=False)
    op.create_index("ix_sales_platform_date", "stock_sales", ["platform_id", "sale_date"], unique=False)

    # Payment installments
    op.create_table(
        "payment_records",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("sale_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sale_id"], ["stock_sales.id"]),
        sa.CheckConstraint("amount_cents > 0", name="ck_payment_records_amount_positive"),
        sa.UniqueConstraint("sale_id", "sequence", name="uq_payment_records_sale_sequence"),
    )
    op.create_index("ix_payment_records_sale_id", "payment_records", ["sale_id"], unique=False)

    # Purchases
    op.create_table(
        "stock_purchases",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("supplier", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_method", sa.String(length=16), nullable=False, server_default="cash"),
        sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="paid"),
        sa.Column("invoice_number", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["digital_products.id"]),
        sa.CheckConstraint("quantity > 0", name="ck_purchases_quantity_positive"),
        sa.CheckConstraint("unit_cost_cents >= 0", name="ck_purchases_unit_cost_non_negative"),
    )
    op.create_index("ix_stock_purchases_product_id", "stock_purchases", ["product_id"], unique=False)
    op.create_index("ix_stock_purchases_purchase_date", "stock_purchases", ["purchase_date"], unique=False)
    op.create_index("ix_purchases_product_date", "stock_purchases", ["product_id", "purchase_date"], unique=False)


def downgrade():
    op.drop_table("stock_purchases")
    op.drop_table("payment_records")
    op.drop_table("stock_sales")
    op.drop_table("platform_credit_movements")
    op.drop_table("stock_movements")
    op.drop_table("digital_products")
    op.drop_table("platforms")
