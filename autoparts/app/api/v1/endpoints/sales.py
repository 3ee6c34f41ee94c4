from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip, get_current_user
from autoparts.app.api.role_deps import require_privileged
from autoparts.app.core.database import get_db
from autoparts.app.models.pos import CashierSession, PaymentMethod, Sale, SaleStatus
from autoparts.app.models.user import User
from autoparts.app.schemas.sales import (
    CashierSessionOut,
    CloseRegisterRequest,
    DaySummaryOut,
    SaleCancelOut,
    SaleCreate,
    SaleOut,
)
from autoparts.app.services import cash_register as register_service
from autoparts.app.services import sales as sales_service

router = APIRouter()


@router.post("", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: SaleCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Sale:
    return sales_service.create_sale(
        db,
        items=payload.items,
        payment_method=payload.payment_method,
        user_id=current_user.id,
        customer_id=payload.customer_id,
        global_discount_pct=payload.global_discount,
        global_discount_amount=payload.global_discount_amount,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.get("", response_model=list[SaleOut])
def list_sales(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    cashier_id: UUID | None = Query(None),
    payment_method: PaymentMethod | None = Query(None),
    sale_status: SaleStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, description="Invoice number fragment"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[Sale]:
    return sales_service.list_sales(
        db,
        start_date=start_date,
        end_date=end_date,
        cashier_id=cashier_id,
        payment_method=payment_method,
        status=sale_status,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/me/today", response_model=DaySummaryOut)
def my_sales_today(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return sales_service.cashier_day_summary(db, current_user.id)


@router.post(
    "/close-register",
    response_model=CashierSessionOut,
    status_code=status.HTTP_201_CREATED,
)
def close_register(
    payload: CloseRegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CashierSession:
    return register_service.close_cash_register(
        db,
        cashier_id=current_user.id,
        counted_cash=payload.counted_cash,
        counted_card=payload.counted_card,
        counted_transfer=payload.counted_transfer,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.get("/register-sessions", response_model=list[CashierSessionOut])
def list_register_sessions(
    cashier_id: UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_privileged),
) -> list[CashierSession]:
    return register_service.list_sessions(db, cashier_id=cashier_id, limit=limit)


@router.get("/register-sessions/{session_id}", response_model=CashierSessionOut)
def get_register_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_privileged),
) -> CashierSession:
    return register_service.get_session(db, session_id)


@router.get("/{sale_id}", response_model=SaleOut)
def get_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Sale:
    return sales_service.get_sale(db, sale_id)


@router.put("/{sale_id}/cancel", response_model=SaleCancelOut)
def cancel_sale(
    sale_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> dict[str, Any]:
    sale, skipped = sales_service.cancel_sale(
        db, sale_id, current_user.id, ip_address=client_ip(request)
    )
    return {
        "message": f"Sale {sale.invoice_number} cancelled and stock restored",
        "sale": sale,
        "skipped_items": skipped,
    }
