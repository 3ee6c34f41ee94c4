from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip, get_current_user
from autoparts.app.api.role_deps import require_privileged
from autoparts.app.core.database import get_db
from autoparts.app.models.pos import CashWithdrawal, WithdrawalStatus
from autoparts.app.models.user import User
from autoparts.app.schemas.cash import (
    WithdrawalCreate,
    WithdrawalListOut,
    WithdrawalOut,
    WithdrawalStatusUpdate,
)
from autoparts.app.services import withdrawals as withdrawal_service

router = APIRouter()


@router.post("", response_model=WithdrawalOut, status_code=status.HTTP_201_CREATED)
def create_withdrawal(
    payload: WithdrawalCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CashWithdrawal:
    return withdrawal_service.create_withdrawal(
        db,
        user=current_user,
        amount=payload.amount,
        reason=payload.reason,
        category=payload.category,
        receipt_attached=payload.receipt_attached,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.get("", response_model=WithdrawalListOut)
def list_withdrawals(
    withdrawal_status: WithdrawalStatus | None = Query(None, alias="status"),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return withdrawal_service.list_withdrawals(
        db,
        user=current_user,
        status=withdrawal_status,
        start_date=start_date,
        end_date=end_date,
    )


@router.put("/{withdrawal_id}/status", response_model=WithdrawalOut)
def update_withdrawal_status(
    withdrawal_id: UUID,
    payload: WithdrawalStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> CashWithdrawal:
    return withdrawal_service.update_withdrawal_status(
        db,
        withdrawal_id=withdrawal_id,
        status=payload.status,
        user_id=current_user.id,
        notes=payload.notes,
        ip_address=client_ip(request),
    )
