from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator

from autoparts.app.models.pos import WithdrawalCategory, WithdrawalStatus


class WithdrawalCreate(BaseModel):
    amount: Decimal
    reason: str
    category: WithdrawalCategory = WithdrawalCategory.OTHER
    receipt_attached: bool = False
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason is required")
        return v.strip()


class WithdrawalStatusUpdate(BaseModel):
    status: WithdrawalStatus
    notes: str | None = None


class WithdrawalOut(BaseModel):
    id: UUID
    withdrawal_number: str
    amount: Decimal
    reason: str
    category: WithdrawalCategory
    status: WithdrawalStatus
    withdrawn_by: UUID
    authorized_by: UUID | None
    withdrawal_date: datetime
    receipt_attached: bool
    notes: str | None

    class Config:
        from_attributes = True


class WithdrawalListOut(BaseModel):
    withdrawals: list[WithdrawalOut]
    total_amount: Decimal
    by_status: dict[str, int]
