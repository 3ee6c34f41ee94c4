from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip
from autoparts.app.api.role_deps import require_privileged
from autoparts.app.core.database import get_db
from autoparts.app.models.supplier import POStatus, PurchaseOrder
from autoparts.app.models.user import User
from autoparts.app.schemas.supplier import POCreate, POOut, POStatusUpdate
from autoparts.app.services import purchasing as purchasing_service

router = APIRouter()


@router.post("", response_model=POOut, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    payload: POCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> PurchaseOrder:
    return purchasing_service.create_purchase_order(
        db,
        items=payload.items,
        user_id=current_user.id,
        supplier_id=payload.supplier_id,
        generic_supplier_name=payload.generic_supplier_name,
        expected_delivery_date=payload.expected_delivery_date,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.post(
    "/auto-generate",
    response_model=list[POOut],
    status_code=status.HTTP_201_CREATED,
)
def auto_generate_orders(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> list[PurchaseOrder]:
    return purchasing_service.generate_low_stock_orders(
        db, user_id=current_user.id, ip_address=client_ip(request)
    )


@router.get("", response_model=list[POOut])
def list_purchase_orders(
    order_status: POStatus | None = Query(None, alias="status"),
    supplier_id: UUID | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_privileged),
) -> list[PurchaseOrder]:
    return purchasing_service.list_purchase_orders(
        db, status=order_status, supplier_id=supplier_id, limit=limit, offset=offset
    )


@router.get("/{order_id}", response_model=POOut)
def get_purchase_order(
    order_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_privileged),
) -> PurchaseOrder:
    return purchasing_service.get_purchase_order(db, order_id)


@router.put("/{order_id}/status", response_model=POOut)
def update_purchase_order_status(
    order_id: UUID,
    payload: POStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> PurchaseOrder:
    return purchasing_service.update_purchase_order_status(
        db,
        order_id=order_id,
        status=payload.status,
        user_id=current_user.id,
        received_quantities=payload.received_quantities,
        receive_notes=payload.receive_notes,
        ip_address=client_ip(request),
    )
