from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator


class ProductCreate(BaseModel):
    sku: str
    name: str
    description: str | None = None
    brand: str | None = None
    purchase_price: Decimal = Decimal("0")
    selling_price: Decimal
    stock: int = 0
    low_stock_threshold: int = 5
    discount_percentage: Decimal = Decimal("0")
    supplier_id: UUID | None = None

    @field_validator("sku", "name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be blank")
        return v.strip()

    @field_validator("purchase_price", "selling_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price cannot be negative")
        return v

    @field_validator("stock", "low_stock_threshold")
    @classmethod
    def count_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value cannot be negative")
        return v

    @field_validator("discount_percentage")
    @classmethod
    def discount_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Discount must be between 0 and 100")
        return v


class ProductOut(BaseModel):
    id: UUID
    sku: str
    name: str
    description: str | None
    brand: str | None
    purchase_price: Decimal
    selling_price: Decimal
    stock: int
    defective_stock: int
    low_stock_threshold: int
    discount_percentage: Decimal
    sold_count: int
    is_archived: bool
    supplier_id: UUID | None
    created_at: datetime

    class Config:
        from_attributes = True
