from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip, get_current_user
from autoparts.app.api.role_deps import require_privileged
from autoparts.app.core.database import get_db
from autoparts.app.models.returns import Return, ReturnReason, ReturnStatus
from autoparts.app.models.user import User
from autoparts.app.schemas.returns import (
    ReturnableSaleOut,
    ReturnCreate,
    ReturnOut,
    ReturnStatsOut,
)
from autoparts.app.services import returns as returns_service

router = APIRouter()


@router.post("", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    payload: ReturnCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Return:
    return returns_service.create_return(
        db,
        sale_id=payload.sale_id,
        items=payload.items,
        reason=payload.reason,
        refund_method=payload.refund_method,
        user_id=current_user.id,
        exchange_items=payload.exchange_items,
        price_difference=payload.price_difference,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.get("", response_model=list[ReturnOut])
def list_returns(
    sale_id: UUID | None = Query(None),
    return_status: ReturnStatus | None = Query(None, alias="status"),
    reason: ReturnReason | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[Return]:
    return returns_service.list_returns(
        db,
        sale_id=sale_id,
        status=return_status,
        reason=reason,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ReturnStatsOut)
def return_stats(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return returns_service.return_stats(db, start_date, end_date)


@router.get("/sale/{sale_id}/returnable", response_model=ReturnableSaleOut)
def returnable_items(
    sale_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return returns_service.returnable_items(db, sale_id)


@router.get("/{return_id}", response_model=ReturnOut)
def get_return(
    return_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Return:
    return returns_service.get_return(db, return_id)


@router.put("/{return_id}/approve", response_model=ReturnOut)
def approve_return(
    return_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> Return:
    return returns_service.approve_return(
        db, return_id, current_user.id, ip_address=client_ip(request)
    )


@router.put("/{return_id}/reject", response_model=ReturnOut)
def reject_return(
    return_id: UUID,
    request: Request,
    reason: str | None = Query(None, max_length=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> Return:
    return returns_service.reject_return(
        db, return_id, current_user.id, reason=reason, ip_address=client_ip(request)
    )
