from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from autoparts.app.models.supplier import POStatus


class POItemCreate(BaseModel):
    product_id: UUID
    quantity: int
    unit_price: Decimal | None = None  # not negotiated yet

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


class POCreate(BaseModel):
    supplier_id: UUID | None = None
    generic_supplier_name: str | None = None
    expected_delivery_date: date | None = None
    notes: str | None = None
    items: list[POItemCreate]

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: list[POItemCreate]) -> list[POItemCreate]:
        if not v:
            raise ValueError("Purchase order must contain at least one item")
        return v


class POStatusUpdate(BaseModel):
    status: POStatus
    # Keyed by purchase order item id; missing items count as fully received
    received_quantities: dict[UUID, int] | None = None
    receive_notes: str | None = None

    @field_validator("received_quantities")
    @classmethod
    def quantities_non_negative(cls, v: dict[UUID, int] | None) -> dict[UUID, int] | None:
        if v and any(q < 0 for q in v.values()):
            raise ValueError("Received quantities cannot be negative")
        return v


class POItemOut(BaseModel):
    id: UUID
    product_id: UUID | None
    product_name: str
    quantity: int
    received_quantity: int | None
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class POOut(BaseModel):
    id: UUID
    order_number: str
    supplier_id: UUID | None
    generic_supplier_name: str | None
    status: POStatus
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    expected_delivery_date: date | None
    received_date: datetime | None
    notes: str | None
    receive_notes: str | None
    created_by: UUID
    created_at: datetime
    items: list[POItemOut]

    class Config:
        from_attributes = True
