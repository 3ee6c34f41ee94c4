"""Initial schema: catalog, sales, returns, quotations, purchasing, register close.

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, None] = None
branch_labels: Union[str, None] = None
depends_on: Union[str, None] = None

MONEY = sa.Numeric(precision=20, scale=4)
PERCENT = sa.Numeric(precision=5, scale=2)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # ── users / customers / suppliers ──
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("username", sa.String(150), unique=True, nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "DEVELOPER", "CASHIER", name="roleenum"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("total_purchases", MONEY, nullable=False, server_default="0"),
        sa.Column("last_purchase_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_customers_full_name", "customers", ["full_name"])

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        _created_at(),
    )

    # ── products ──
    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("sku", sa.String(50), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("brand", sa.String(100), nullable=True),
        sa.Column("purchase_price", MONEY, nullable=False, server_default="0"),
        sa.Column("selling_price", MONEY, nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("defective_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("discount_percentage", PERCENT, nullable=False, server_default="0"),
        sa.Column("sold_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "supplier_id",
            sa.Uuid(),
            sa.ForeignKey("suppliers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
        sa.CheckConstraint("selling_price >= 0", name="ck_product_selling_price_non_negative"),
        sa.CheckConstraint("purchase_price >= 0", name="ck_product_purchase_price_non_negative"),
        sa.CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        sa.CheckConstraint("defective_stock >= 0", name="ck_product_defective_stock_non_negative"),
        sa.CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_product_discount_range",
        ),
    )
    op.create_index("ix_products_sku", "products", ["sku"])
    op.create_index("ix_products_supplier", "products", ["supplier_id"])

    op.create_table(
        "document_sequences",
        sa.Column("scope", sa.String(50), nullable=False, primary_key=True),
        sa.Column("value", sa.BigInteger(), nullable=False, server_default="0"),
    )

    # ── sales ──
    op.create_table(
        "sales",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("invoice_number", sa.String(30), unique=True, nullable=False),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("total_discount", MONEY, nullable=False, server_default="0"),
        sa.Column("global_discount_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False),
        sa.Column(
            "payment_method",
            sa.Enum("CASH", "CARD", "TRANSFER", name="paymentmethod"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("COMPLETED", "CANCELLED", "RETURNED", name="salestatus"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.CheckConstraint("total >= 0", name="ck_sale_total_non_negative"),
    )
    op.create_index("ix_sales_created_by_created_at", "sales", ["created_by", "created_at"])
    op.create_index("ix_sales_customer", "sales", ["customer_id"])
    op.create_index("ix_sales_status", "sales", ["status"])

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column(
            "sale_id",
            sa.Uuid(),
            sa.ForeignKey("sales.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "product_id",
            sa.Uuid(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_at_sale", MONEY, nullable=False),
        sa.Column("discount_applied", PERCENT, nullable=False, server_default="0"),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity > 0", name="ck_sale_item_qty_positive"),
        sa.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_sale_item_returned_within_sold",
        ),
    )
    op.create_index("ix_sale_items_sale", "sale_items", ["sale_id"])
    op.create_index("ix_sale_items_product", "sale_items", ["product_id"])

    # ── cash withdrawals / register close ──
    op.create_table(
        "cash_withdrawals",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("withdrawal_number", sa.String(30), unique=True, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column(
            "category",
            sa.Enum("PERSONAL", "BUSINESS", "SUPPLIER", "OTHER", name="withdrawalcategory"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", name="withdrawalstatus"),
            nullable=False,
        ),
        sa.Column("withdrawn_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("authorized_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "withdrawal_date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("receipt_attached", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_withdrawal_amount_positive"),
    )
    op.create_index("ix_withdrawals_user_date", "cash_withdrawals", ["withdrawn_by", "withdrawal_date"])
    op.create_index("ix_withdrawals_status", "cash_withdrawals", ["status"])

    op.create_table(
        "cashier_sessions",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("cashier_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("system_sales_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("system_total_amount", MONEY, nullable=False),
        sa.Column("system_cash", MONEY, nullable=False),
        sa.Column("system_card", MONEY, nullable=False),
        sa.Column("system_transfer", MONEY, nullable=False),
        sa.Column("total_withdrawals", MONEY, nullable=False, server_default="0"),
        sa.Column("counted_cash", MONEY, nullable=False),
        sa.Column("counted_card", MONEY, nullable=False),
        sa.Column("counted_transfer", MONEY, nullable=False),
        sa.Column("difference_cash", MONEY, nullable=False),
        sa.Column("difference_card", MONEY, nullable=False),
        sa.Column("difference_transfer", MONEY, nullable=False),
        sa.Column("difference_total", MONEY, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_cashier_sessions_cashier_closed", "cashier_sessions", ["cashier_id", "closed_at"])

    op.create_table(
        "cashier_session_sales",
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("cashier_sessions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "sale_id",
            sa.Uuid(),
            sa.ForeignKey("sales.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_table(
        "cashier_session_withdrawals",
        sa.Column(
            "session_id",
            sa.Uuid(),
            sa.ForeignKey("cashier_sessions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "withdrawal_id",
            sa.Uuid(),
            sa.ForeignKey("cash_withdrawals.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # ── returns ──
    op.create_table(
        "returns",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("return_number", sa.String(30), unique=True, nullable=False),
        sa.Column("sale_id", sa.Uuid(), sa.ForeignKey("sales.id"), nullable=False),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "reason",
            sa.Enum(
                "DEFECTIVE", "WRONG_PART", "NOT_NEEDED", "EXCHANGE", "OTHER",
                name="returnreason",
            ),
            nullable=False,
        ),
        sa.Column(
            "refund_method",
            sa.Enum("CASH", "CARD", "STORE_CREDIT", "EXCHANGE", name="refundmethod"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", "COMPLETED", name="returnstatus"),
            nullable=False,
        ),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("price_difference", MONEY, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("approved_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_returns_sale", "returns", ["sale_id"])
    op.create_index("ix_returns_status", "returns", ["status"])
    op.create_index("ix_returns_created_at", "returns", ["created_at"])

    op.create_table(
        "return_items",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column(
            "return_id",
            sa.Uuid(),
            sa.ForeignKey("returns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sale_item_id", sa.Uuid(), sa.ForeignKey("sale_items.id"), nullable=False),
        sa.Column(
            "product_id",
            sa.Uuid(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("original_price", MONEY, nullable=False),
        sa.Column("return_amount", MONEY, nullable=False),
        sa.Column("is_defective", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint("quantity > 0", name="ck_return_item_qty_positive"),
    )
    op.create_index("ix_return_items_return", "return_items", ["return_id"])
    op.create_index("ix_return_items_product", "return_items", ["product_id"])

    op.create_table(
        "return_exchange_items",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column(
            "return_id",
            sa.Uuid(),
            sa.ForeignKey("returns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Uuid(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_exchange_item_qty_positive"),
    )
    op.create_index("ix_exchange_items_product", "return_exchange_items", ["product_id"])

    # ── quotations ──
    op.create_table(
        "quotations",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("quotation_number", sa.String(30), unique=True, nullable=False),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("customers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("generic_customer_name", sa.String(255), nullable=True),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("tax", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "APPROVED", "REJECTED", "CONVERTED", "EXPIRED",
                name="quotationstatus",
            ),
            nullable=False,
        ),
        sa.Column("valid_until", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("processed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "converted_sale_id",
            sa.Uuid(),
            sa.ForeignKey("sales.id"),
            unique=True,
            nullable=True,
        ),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_quotations_status", "quotations", ["status"])
    op.create_index("ix_quotations_valid_until", "quotations", ["valid_until"])

    op.create_table(
        "quotation_items",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column(
            "quotation_id",
            sa.Uuid(),
            sa.ForeignKey("quotations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Uuid(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("discount", PERCENT, nullable=False, server_default="0"),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_quotation_item_qty_positive"),
        sa.CheckConstraint(
            "discount >= 0 AND discount <= 100", name="ck_quotation_item_discount_range"
        ),
    )
    op.create_index("ix_quotation_items_product", "quotation_items", ["product_id"])

    # ── purchasing ──
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column("order_number", sa.String(30), unique=True, nullable=False),
        sa.Column("supplier_id", sa.Uuid(), sa.ForeignKey("suppliers.id"), nullable=True),
        sa.Column("generic_supplier_name", sa.String(255), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "SENT", "PARTIALLY_RECEIVED", "RECEIVED", "CANCELLED",
                name="postatus",
            ),
            nullable=False,
        ),
        sa.Column("subtotal", MONEY, nullable=False, server_default="0"),
        sa.Column("tax", MONEY, nullable=False, server_default="0"),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        sa.Column("expected_delivery_date", sa.Date(), nullable=True),
        sa.Column("received_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("receive_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_po_supplier", "purchase_orders", ["supplier_id"])
    op.create_index("ix_po_status", "purchase_orders", ["status"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.Uuid(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "product_id",
            sa.Uuid(),
            sa.ForeignKey("products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("received_quantity", sa.Integer(), nullable=True),
        sa.Column("unit_price", MONEY, nullable=False, server_default="0"),
        sa.Column("subtotal", MONEY, nullable=False, server_default="0"),
        sa.CheckConstraint("quantity > 0", name="ck_po_item_qty_positive"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_item_price_non_negative"),
    )
    op.create_index("ix_po_items_product", "purchase_order_items", ["product_id"])

    # ── audit ──
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False, primary_key=True),
        sa.Column(
            "user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(100), nullable=False),
        sa.Column("changes", postgresql.JSONB(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_resource", "audit_logs", ["resource_type", "resource_id"])
    op.create_index("ix_audit_user", "audit_logs", ["user_id"])
    op.create_index("ix_audit_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "purchase_order_items",
        "purchase_orders",
        "quotation_items",
        "quotations",
        "return_exchange_items",
        "return_items",
        "returns",
        "cashier_session_withdrawals",
        "cashier_session_sales",
        "cashier_sessions",
        "cash_withdrawals",
        "sale_items",
        "sales",
        "document_sequences",
        "products",
        "suppliers",
        "customers",
        "users",
    ):
        op.drop_table(table)

    for enum_name in (
        "postatus",
        "quotationstatus",
        "returnstatus",
        "refundmethod",
        "returnreason",
        "withdrawalstatus",
        "withdrawalcategory",
        "salestatus",
        "paymentmethod",
        "roleenum",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
