from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from autoparts.app.api.deps import client_ip, get_current_user
from autoparts.app.api.role_deps import require_privileged
from autoparts.app.core.database import get_db
from autoparts.app.models.inventory import Product
from autoparts.app.models.user import User
from autoparts.app.schemas.inventory import ProductCreate, ProductOut
from autoparts.app.services import products as product_service

router = APIRouter()


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> Product:
    return product_service.create_product(
        db,
        user_id=current_user.id,
        ip_address=client_ip(request),
        **payload.model_dump(),
    )


@router.get("/low-stock", response_model=list[ProductOut])
def low_stock(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[Product]:
    return product_service.low_stock_products(db)


@router.put("/{product_id}/archive", response_model=ProductOut)
def archive_product(
    product_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> Product:
    return product_service.archive_product(
        db, product_id, current_user.id, ip_address=client_ip(request)
    )


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged),
) -> None:
    product_service.delete_product(
        db, product_id, current_user.id, ip_address=client_ip(request)
    )
