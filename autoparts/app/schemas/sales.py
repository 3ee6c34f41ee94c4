from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from autoparts.app.models.pos import PaymentMethod, SaleStatus


# ─── Request ──────────────────────────────────────────────────────────────────


class SaleItemIn(BaseModel):
    product_id: UUID
    quantity: int
    # Extra line discount (percent) on top of the product's own discount
    discount: Decimal = Decimal("0")

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @field_validator("discount")
    @classmethod
    def discount_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Discount must be between 0 and 100")
        return v


class SaleCreate(BaseModel):
    items: list[SaleItemIn]
    payment_method: PaymentMethod
    customer_id: UUID | None = None
    global_discount: Decimal = Decimal("0")
    global_discount_amount: Decimal | None = None
    notes: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[SaleItemIn]) -> list[SaleItemIn]:
        if not v:
            raise ValueError("Sale must contain at least one item")
        return v

    @field_validator("global_discount")
    @classmethod
    def global_discount_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Global discount must be between 0 and 100")
        return v

    @field_validator("global_discount_amount")
    @classmethod
    def global_discount_amount_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Global discount amount cannot be negative")
        return v


# ─── Response ─────────────────────────────────────────────────────────────────


class SaleItemOut(BaseModel):
    id: UUID
    product_id: UUID | None
    product_name: str
    quantity: int
    price_at_sale: Decimal
    discount_applied: Decimal
    subtotal: Decimal
    returned_quantity: int

    class Config:
        from_attributes = True


class SaleOut(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: UUID | None
    subtotal: Decimal
    total_discount: Decimal
    global_discount_amount: Decimal
    total: Decimal
    payment_method: PaymentMethod
    status: SaleStatus
    notes: str | None
    created_by: UUID
    created_at: datetime
    cancelled_at: datetime | None
    items: list[SaleItemOut]

    class Config:
        from_attributes = True


class SaleCancelOut(BaseModel):
    message: str
    sale: SaleOut
    skipped_items: int


class MethodBreakdown(BaseModel):
    count: int
    total: Decimal


class DaySummaryOut(BaseModel):
    business_date: date
    sales_count: int
    total_amount: Decimal
    by_payment_method: dict[str, MethodBreakdown]
    sales: list[SaleOut]


# ─── Register close ───────────────────────────────────────────────────────────


class CloseRegisterRequest(BaseModel):
    """All three counted totals are mandatory; negatives mean a till shortfall."""

    counted_cash: Decimal
    counted_card: Decimal
    counted_transfer: Decimal
    notes: str | None = None

    @model_validator(mode="before")
    @classmethod
    def reject_null_totals(cls, data: object) -> object:
        if isinstance(data, dict):
            missing = [
                key
                for key in ("counted_cash", "counted_card", "counted_transfer")
                if data.get(key) is None
            ]
            if missing:
                raise ValueError(f"Missing counted totals: {', '.join(missing)}")
        return data


class CashierSessionOut(BaseModel):
    id: UUID
    cashier_id: UUID
    opened_at: datetime
    closed_at: datetime
    system_sales_count: int
    system_total_amount: Decimal
    system_cash: Decimal
    system_card: Decimal
    system_transfer: Decimal
    total_withdrawals: Decimal
    counted_cash: Decimal
    counted_card: Decimal
    counted_transfer: Decimal
    difference_cash: Decimal
    difference_card: Decimal
    difference_transfer: Decimal
    difference_total: Decimal
    notes: str | None
    sale_ids: list[UUID]
    withdrawal_ids: list[UUID]

    class Config:
        from_attributes = True
