from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator

from autoparts.app.models.pos import PaymentMethod
from autoparts.app.models.quotes import QuotationStatus


class QuotationItemIn(BaseModel):
    product_id: UUID
    quantity: int
    unit_price: Decimal | None = None  # defaults to the product's selling price
    discount: Decimal = Decimal("0")

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Unit price cannot be negative")
        return v

    @field_validator("discount")
    @classmethod
    def discount_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Discount must be between 0 and 100")
        return v


class QuotationCreate(BaseModel):
    items: list[QuotationItemIn]
    customer_id: UUID | None = None
    generic_customer_name: str | None = None
    valid_until: date | None = None
    notes: str | None = None
    terms: str | None = None

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[QuotationItemIn]) -> list[QuotationItemIn]:
        if not v:
            raise ValueError("Quotation must contain at least one item")
        return v


class QuotationStatusUpdate(BaseModel):
    status: QuotationStatus

    @model_validator(mode="after")
    def only_decisions(self) -> "QuotationStatusUpdate":
        if self.status not in (QuotationStatus.APPROVED, QuotationStatus.REJECTED):
            raise ValueError("Status can only be set to APPROVED or REJECTED")
        return self


class QuotationConvert(BaseModel):
    payment_method: PaymentMethod
    global_discount: Decimal = Decimal("0")
    global_discount_amount: Decimal | None = None
    notes: str | None = None

    @field_validator("global_discount")
    @classmethod
    def global_discount_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Global discount must be between 0 and 100")
        return v


class QuotationItemOut(BaseModel):
    id: UUID
    product_id: UUID | None
    product_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class QuotationOut(BaseModel):
    id: UUID
    quotation_number: str
    customer_id: UUID | None
    generic_customer_name: str | None
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    status: QuotationStatus
    valid_until: date
    notes: str | None
    terms: str | None
    created_by: UUID
    converted_sale_id: UUID | None
    converted_at: datetime | None
    created_at: datetime
    items: list[QuotationItemOut]

    class Config:
        from_attributes = True
