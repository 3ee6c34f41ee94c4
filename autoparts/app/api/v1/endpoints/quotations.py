from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip, get_current_user
from autoparts.app.api.role_deps import require_privileged
from autoparts.app.core.database import get_db
from autoparts.app.models.pos import Sale
from autoparts.app.models.quotes import Quotation, QuotationStatus
from autoparts.app.models.user import User
from autoparts.app.schemas.quotes import (
    QuotationConvert,
    QuotationCreate,
    QuotationOut,
    QuotationStatusUpdate,
)
from autoparts.app.schemas.sales import SaleOut
from autoparts.app.services import quotations as quotation_service

router = APIRouter()


@router.post("", response_model=QuotationOut, status_code=status.HTTP_201_CREATED)
def create_quotation(
    payload: QuotationCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Quotation:
    return quotation_service.create_quotation(
        db,
        items=payload.items,
        user_id=current_user.id,
        customer_id=payload.customer_id,
        generic_customer_name=payload.generic_customer_name,
        valid_until=payload.valid_until,
        notes=payload.notes,
        terms=payload.terms,
        ip_address=client_ip(request),
    )


@router.get("", response_model=list[QuotationOut])
def list_quotations(
    quotation_status: QuotationStatus | None = Query(None, alias="status"),
    customer_id: UUID | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[Quotation]:
    return quotation_service.list_quotations(
        db, status=quotation_status, customer_id=customer_id, limit=limit, offset=offset
    )


@router.get("/{quotation_id}", response_model=QuotationOut)
def get_quotation(
    quotation_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Quotation:
    return quotation_service.get_quotation(db, quotation_id)


@router.put("/{quotation_id}/status", response_model=QuotationOut)
def update_quotation_status(
    quotation_id: UUID,
    payload: QuotationStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> Quotation:
    return quotation_service.update_quotation_status(
        db,
        quotation_id=quotation_id,
        status=payload.status,
        user_id=current_user.id,
        ip_address=client_ip(request),
    )


@router.post(
    "/{quotation_id}/convert",
    response_model=SaleOut,
    status_code=status.HTTP_201_CREATED,
)
def convert_quotation(
    quotation_id: UUID,
    payload: QuotationConvert,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Sale:
    return quotation_service.convert_to_sale(
        db,
        quotation_id=quotation_id,
        payment_method=payload.payment_method,
        user_id=current_user.id,
        global_discount_pct=payload.global_discount,
        global_discount_amount=payload.global_discount_amount,
        notes=payload.notes,
        ip_address=client_ip(request),
    )
