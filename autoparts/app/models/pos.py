from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autoparts.app.core.database import Base


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"


class SaleStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class WithdrawalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class WithdrawalCategory(str, enum.Enum):
    PERSONAL = "PERSONAL"
    BUSINESS = "BUSINESS"
    SUPPLIER = "SUPPLIER"
    OTHER = "OTHER"


# ─── Sales ───────────────────────────────────────────────────────────────────


class Sale(Base):
    """Completed POS sale. Line prices are snapshots taken at sale time."""

    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    total_discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    global_discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    total: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod), nullable=False
    )
    status: Mapped[SaleStatus] = mapped_column(
        Enum(SaleStatus), nullable=False, default=SaleStatus.COMPLETED
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )

    items: Mapped[list[SaleItem]] = relationship(
        back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.position"
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_sale_total_non_negative"),
        Index("ix_sales_created_by_created_at", "created_by", "created_at"),
        Index("ix_sales_customer", "customer_id"),
        Index("ix_sales_status", "status"),
    )


class SaleItem(Base):
    __tablename__ = "sale_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Nullable so a hard-deleted product leaves the historical line intact
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_sale: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    discount_applied: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), nullable=False, default=Decimal("0")
    )
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    # Units claimed by non-rejected returns
    returned_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    sale: Mapped[Sale] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_item_qty_positive"),
        CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_sale_item_returned_within_sold",
        ),
        Index("ix_sale_items_sale", "sale_id"),
        Index("ix_sale_items_product", "product_id"),
    )


# ─── Cash withdrawals ────────────────────────────────────────────────────────


class CashWithdrawal(Base):
    __tablename__ = "cash_withdrawals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    withdrawal_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[WithdrawalCategory] = mapped_column(
        Enum(WithdrawalCategory), nullable=False, default=WithdrawalCategory.OTHER
    )
    status: Mapped[WithdrawalStatus] = mapped_column(
        Enum(WithdrawalStatus), nullable=False, default=WithdrawalStatus.PENDING
    )
    withdrawn_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    authorized_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    withdrawal_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    receipt_attached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdrawal_amount_positive"),
        Index("ix_withdrawals_user_date", "withdrawn_by", "withdrawal_date"),
        Index("ix_withdrawals_status", "status"),
    )


# ─── Register close ──────────────────────────────────────────────────────────


cashier_session_sales = Table(
    "cashier_session_sales",
    Base.metadata,
    Column("session_id", ForeignKey("cashier_sessions.id", ondelete="CASCADE"), primary_key=True),
    Column("sale_id", ForeignKey("sales.id", ondelete="CASCADE"), primary_key=True),
)

cashier_session_withdrawals = Table(
    "cashier_session_withdrawals",
    Base.metadata,
    Column("session_id", ForeignKey("cashier_sessions.id", ondelete="CASCADE"), primary_key=True),
    Column("withdrawal_id", ForeignKey("cash_withdrawals.id", ondelete="CASCADE"), primary_key=True),
)


class CashierSession(Base):
    """Append-only reconciliation snapshot written when a cashier closes the till.

    difference_total = counted cash + card + transfer - system_total_amount
    """

    __tablename__ = "cashier_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cashier_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    system_sales_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    system_total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    system_cash: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    system_card: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    system_transfer: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    total_withdrawals: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    counted_cash: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    counted_card: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    counted_transfer: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    difference_cash: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    difference_card: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    difference_transfer: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    difference_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    sales: Mapped[list[Sale]] = relationship(secondary=cashier_session_sales)
    withdrawals: Mapped[list[CashWithdrawal]] = relationship(
        secondary=cashier_session_withdrawals
    )

    __table_args__ = (
        Index("ix_cashier_sessions_cashier_closed", "cashier_id", "closed_at"),
    )

    @property
    def sale_ids(self) -> list[uuid.UUID]:
        return [sale.id for sale in self.sales]

    @property
    def withdrawal_ids(self) -> list[uuid.UUID]:
        return [w.id for w in self.withdrawals]
