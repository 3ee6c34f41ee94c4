from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from autoparts.app.models.returns import RefundMethod, ReturnReason, ReturnStatus


# ─── Request ──────────────────────────────────────────────────────────────────


class ReturnItemIn(BaseModel):
    product_id: UUID
    quantity: int
    is_defective: bool = False

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class ExchangeItemIn(BaseModel):
    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class ReturnCreate(BaseModel):
    sale_id: UUID
    items: list[ReturnItemIn]
    reason: ReturnReason
    refund_method: RefundMethod
    exchange_items: list[ExchangeItemIn] | None = None
    price_difference: Decimal | None = None
    notes: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[ReturnItemIn]) -> list[ReturnItemIn]:
        if not v:
            raise ValueError("Return must contain at least one item")
        return v


# ─── Response ─────────────────────────────────────────────────────────────────


class ReturnItemOut(BaseModel):
    id: UUID
    sale_item_id: UUID
    product_id: UUID | None
    product_name: str
    quantity: int
    original_price: Decimal
    return_amount: Decimal
    is_defective: bool

    class Config:
        from_attributes = True


class ExchangeItemOut(BaseModel):
    id: UUID
    product_id: UUID | None
    product_name: str
    quantity: int
    price: Decimal

    class Config:
        from_attributes = True


class ReturnOut(BaseModel):
    id: UUID
    return_number: str
    sale_id: UUID
    customer_id: UUID | None
    reason: ReturnReason
    refund_method: RefundMethod
    status: ReturnStatus
    total_amount: Decimal
    price_difference: Decimal
    notes: str | None
    processed_by: UUID
    approved_by: UUID | None
    created_at: datetime
    items: list[ReturnItemOut]
    exchange_items: list[ExchangeItemOut]

    class Config:
        from_attributes = True


class ReturnableItemOut(BaseModel):
    sale_item_id: UUID
    product_id: UUID | None
    product_name: str
    quantity: int
    returned_quantity: int
    returnable_quantity: int
    price_at_sale: Decimal


class ReturnableSaleOut(BaseModel):
    sale_id: UUID
    invoice_number: str
    status: str
    items: list[ReturnableItemOut]


class ReturnStatsOut(BaseModel):
    total_returns: int
    total_amount: Decimal
    by_status: dict[str, int]
    by_reason: dict[str, int]
