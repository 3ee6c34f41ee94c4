"""Catalog operations that guard referential integrity.

Products that appear on any document are archived rather than deleted, so
historical sales, returns, quotations and purchase orders keep their lines.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy import select
from sqlalchemy.orm import Session

from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import BusinessRuleViolation, DuplicateError, NotFoundError
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import SaleItem
from autoparts.app.models.quotes import QuotationItem
from autoparts.app.models.returns import ReturnExchangeItem, ReturnItem
from autoparts.app.models.supplier import PurchaseOrderItem, Supplier
from autoparts.app.services.audit import log_action

_REFERENCING_LINES = (
    SaleItem,
    ReturnItem,
    ReturnExchangeItem,
    PurchaseOrderItem,
    QuotationItem,
)


def normalize_sku(sku: str) -> str:
    return sku.strip().upper()


def create_product(
    db: Session,
    *,
    sku: str,
    name: str,
    selling_price: Decimal,
    user_id: UUID,
    purchase_price: Decimal = Decimal("0"),
    stock: int = 0,
    low_stock_threshold: int = 5,
    discount_percentage: Decimal = Decimal("0"),
    supplier_id: UUID | None = None,
    description: str | None = None,
    brand: str | None = None,
    ip_address: str | None = None,
) -> Product:
    sku = normalize_sku(sku)
    with atomic(db):
        if db.query(Product.id).filter(Product.sku == sku).first() is not None:
            raise DuplicateError(f"A product with SKU {sku} already exists")
        if supplier_id is not None and db.get(Supplier, supplier_id) is None:
            raise NotFoundError("Supplier not found")
        product = Product(
            sku=sku,
            name=name.strip(),
            description=description,
            brand=brand,
            purchase_price=purchase_price,
            selling_price=selling_price,
            stock=stock,
            defective_stock=0,
            low_stock_threshold=low_stock_threshold,
            discount_percentage=discount_percentage,
            sold_count=0,
            supplier_id=supplier_id,
        )
        db.add(product)
        db.flush()
        log_action(
            db,
            user_id=user_id,
            action="PRODUCT_CREATED",
            resource_type="products",
            resource_id=sku,
            ip_address=ip_address,
            changes={"name": product.name, "stock": stock},
        )

    db.refresh(product)
    return product


def reference_count(db: Session, product_id: UUID) -> int:
    """Number of document lines that point at *product_id*."""
    return sum(
        db.execute(
            select(sa_func.count()).select_from(model).where(model.product_id == product_id)
        ).scalar_one()
        for model in _REFERENCING_LINES
    )


def archive_product(
    db: Session, product_id: UUID, user_id: UUID, ip_address: str | None = None
) -> Product:
    with atomic(db):
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        product.is_archived = True
        log_action(
            db,
            user_id=user_id,
            action="PRODUCT_ARCHIVED",
            resource_type="products",
            resource_id=product.sku,
            ip_address=ip_address,
        )
    db.refresh(product)
    return product


def delete_product(
    db: Session, product_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    """Hard delete, allowed only while no document line references the product."""
    with atomic(db):
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        references = reference_count(db, product_id)
        if references:
            raise BusinessRuleViolation(
                f"Product {product.sku} is referenced by {references} document line(s); "
                "archive it instead"
            )
        log_action(
            db,
            user_id=user_id,
            action="PRODUCT_DELETED",
            resource_type="products",
            resource_id=product.sku,
            ip_address=ip_address,
        )
        db.delete(product)


def low_stock_products(db: Session) -> list[Product]:
    return (
        db.query(Product)
        .filter(
            Product.is_archived.is_(False),
            Product.stock <= Product.low_stock_threshold,
        )
        .order_by(Product.stock, Product.name)
        .all()
    )
