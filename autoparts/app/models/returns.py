from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autoparts.app.core.database import Base


class ReturnReason(str, enum.Enum):
    DEFECTIVE = "DEFECTIVE"
    WRONG_PART = "WRONG_PART"
    NOT_NEEDED = "NOT_NEEDED"
    EXCHANGE = "EXCHANGE"
    OTHER = "OTHER"


class RefundMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    STORE_CREDIT = "STORE_CREDIT"
    EXCHANGE = "EXCHANGE"


class ReturnStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


# Statuses whose stock effects have been applied
APPLIED_RETURN_STATUSES = (ReturnStatus.APPROVED, ReturnStatus.COMPLETED)


class Return(Base):
    __tablename__ = "returns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    sale_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sales.id"), nullable=False
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    reason: Mapped[ReturnReason] = mapped_column(Enum(ReturnReason), nullable=False)
    refund_method: Mapped[RefundMethod] = mapped_column(
        Enum(RefundMethod), nullable=False
    )
    status: Mapped[ReturnStatus] = mapped_column(
        Enum(ReturnStatus), nullable=False, default=ReturnStatus.PENDING
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    # Positive: customer owes the store. Negative: store owes the customer.
    price_difference: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list[ReturnItem]] = relationship(
        back_populates="return_", cascade="all, delete-orphan"
    )
    exchange_items: Mapped[list[ReturnExchangeItem]] = relationship(
        back_populates="return_", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_returns_sale", "sale_id"),
        Index("ix_returns_status", "status"),
        Index("ix_returns_created_at", "created_at"),
    )


class ReturnItem(Base):
    __tablename__ = "return_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("returns.id", ondelete="CASCADE"), nullable=False
    )
    sale_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sale_items.id"), nullable=False
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    original_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    return_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    is_defective: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    return_: Mapped[Return] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_return_item_qty_positive"),
        Index("ix_return_items_return", "return_id"),
        Index("ix_return_items_product", "product_id"),
    )


class ReturnExchangeItem(Base):
    """Replacement part handed to the customer on an exchange."""

    __tablename__ = "return_exchange_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    return_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("returns.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    return_: Mapped[Return] = relationship(back_populates="exchange_items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_exchange_item_qty_positive"),
        Index("ix_exchange_items_product", "product_id"),
    )
