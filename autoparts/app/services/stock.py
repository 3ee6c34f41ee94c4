"""Stock ledger.

Every change to ``Product.stock`` / ``Product.defective_stock`` is a single
conditional UPDATE evaluated by the database, so concurrent sales of the
same part cannot lose updates or drive a counter negative.  Callers validate
all their lines first and only then call into this module, inside the same
transaction.
"""

from __future__ import annotations

import enum
import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from autoparts.app.core.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from autoparts.app.models.inventory import Product

logger = logging.getLogger(__name__)

_STOCK_FIELDS = ["stock", "defective_stock", "sold_count"]


class StockDestination(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    DEFECTIVE = "DEFECTIVE"


def _check_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")


def _expire_loaded(db: Session, product_id: UUID) -> None:
    """Drop cached counters so the next attribute access reloads them."""
    instance = db.identity_map.get(db.identity_key(Product, product_id))
    if instance is not None:
        db.expire(instance, _STOCK_FIELDS)


def _raise_insufficient(db: Session, product_id: UUID, quantity: int) -> None:
    row = db.execute(
        select(Product.name, Product.stock).where(Product.id == product_id)
    ).first()
    if row is None:
        raise NotFoundError(f"Product {product_id} not found")
    raise InsufficientStockError(
        f"Insufficient stock for '{row.name}': "
        f"{row.stock} available, {quantity} requested"
    )


def reserve(db: Session, product_id: UUID, quantity: int) -> None:
    """Take *quantity* units out of available stock for a sale."""
    _check_quantity(quantity)
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(
            stock=Product.stock - quantity,
            sold_count=Product.sold_count + quantity,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_insufficient(db, product_id, quantity)
    _expire_loaded(db, product_id)


def consume(db: Session, product_id: UUID, quantity: int) -> None:
    """Hand units out without a sale (exchange replacement parts)."""
    _check_quantity(quantity)
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_insufficient(db, product_id, quantity)
    _expire_loaded(db, product_id)


def release(
    db: Session,
    product_id: UUID,
    quantity: int,
    destination: StockDestination = StockDestination.AVAILABLE,
) -> bool:
    """Put *quantity* units back. Returns False if the product no longer exists."""
    _check_quantity(quantity)
    column = (
        Product.defective_stock
        if destination is StockDestination.DEFECTIVE
        else Product.stock
    )
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values({column.key: column + quantity})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    _expire_loaded(db, product_id)
    return True
