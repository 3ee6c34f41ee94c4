from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from autoparts.app.core.config import settings
from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from autoparts.app.core.timeutils import utcnow
from autoparts.app.models.inventory import Product
from autoparts.app.models.supplier import POStatus, PurchaseOrder, PurchaseOrderItem, Supplier
from autoparts.app.schemas.supplier import POItemCreate
from autoparts.app.services.audit import log_action
from autoparts.app.services.sequences import SequenceKind, insert_numbered
from autoparts.app.services.stock import StockDestination, release

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

UNASSIGNED_SUPPLIER = "Unassigned supplier"

ALLOWED_TRANSITIONS: dict[POStatus, set[POStatus]] = {
    POStatus.PENDING: {
        POStatus.SENT,
        POStatus.PARTIALLY_RECEIVED,
        POStatus.RECEIVED,
        POStatus.CANCELLED,
    },
    POStatus.SENT: {POStatus.PARTIALLY_RECEIVED, POStatus.RECEIVED, POStatus.CANCELLED},
    POStatus.PARTIALLY_RECEIVED: {POStatus.RECEIVED, POStatus.CANCELLED},
    POStatus.RECEIVED: set(),
    POStatus.CANCELLED: set(),
}


def _order_totals(
    items: Sequence[PurchaseOrderItem], tax_rate: Decimal
) -> tuple[Decimal, Decimal, Decimal]:
    """``(subtotal, tax, total)``; tax and total stay 0 until every line is priced."""
    subtotal = sum((Decimal(str(i.subtotal)) for i in items), ZERO)
    if not items or any(Decimal(str(i.unit_price)) <= ZERO for i in items):
        return subtotal, ZERO, ZERO
    tax = (subtotal * tax_rate / HUNDRED).quantize(Q, rounding=ROUND_HALF_UP)
    return subtotal, tax, subtotal + tax


def _build_item(product: Product, quantity: int, unit_price: Decimal | None) -> PurchaseOrderItem:
    price = Decimal(str(unit_price)) if unit_price is not None else ZERO
    return PurchaseOrderItem(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price=price,
        subtotal=(price * quantity).quantize(Q, rounding=ROUND_HALF_UP),
    )


def _new_order(
    db: Session,
    *,
    items: list[PurchaseOrderItem],
    user_id: UUID,
    supplier_id: UUID | None,
    generic_supplier_name: str | None,
    expected_delivery_date: date | None,
    notes: str | None,
    tax_rate: Decimal,
    ip_address: str | None,
) -> PurchaseOrder:
    subtotal, tax, total = _order_totals(items, tax_rate)
    order = PurchaseOrder(
        supplier_id=supplier_id,
        generic_supplier_name=generic_supplier_name,
        status=POStatus.PENDING,
        subtotal=subtotal,
        tax=tax,
        total=total,
        expected_delivery_date=expected_delivery_date,
        notes=notes,
        created_by=user_id,
        items=items,
    )
    number = insert_numbered(db, SequenceKind.PURCHASE_ORDER, order, "order_number")
    log_action(
        db,
        user_id=user_id,
        action="PO_CREATED",
        resource_type="purchase_orders",
        resource_id=number,
        ip_address=ip_address,
        changes={
            "order_number": number,
            "supplier_id": supplier_id,
            "item_count": len(items),
            "total": total,
        },
    )
    return order


def create_purchase_order(
    db: Session,
    *,
    items: Sequence[POItemCreate],
    user_id: UUID,
    supplier_id: UUID | None = None,
    generic_supplier_name: str | None = None,
    expected_delivery_date: date | None = None,
    notes: str | None = None,
    tax_rate: Decimal | None = None,
    ip_address: str | None = None,
) -> PurchaseOrder:
    if not items:
        raise ValidationError("Purchase order must contain at least one item")
    rate = settings.TAX_RATE if tax_rate is None else Decimal(str(tax_rate))

    with atomic(db):
        if supplier_id is not None and db.get(Supplier, supplier_id) is None:
            raise NotFoundError("Supplier not found")

        rows: list[PurchaseOrderItem] = []
        for item in items:
            product = db.get(Product, item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            rows.append(_build_item(product, item.quantity, item.unit_price))

        order = _new_order(
            db,
            items=rows,
            user_id=user_id,
            supplier_id=supplier_id,
            generic_supplier_name=generic_supplier_name,
            expected_delivery_date=expected_delivery_date,
            notes=notes,
            tax_rate=rate,
            ip_address=ip_address,
        )

    db.refresh(order)
    return order


def get_purchase_order(db: Session, order_id: UUID) -> PurchaseOrder:
    order = db.get(PurchaseOrder, order_id)
    if order is None:
        raise NotFoundError("Purchase order not found")
    return order


def list_purchase_orders(
    db: Session,
    *,
    status: POStatus | None = None,
    supplier_id: UUID | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[PurchaseOrder]:
    query = db.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.created_at.desc()).offset(offset).limit(limit).all()


def update_purchase_order_status(
    db: Session,
    *,
    order_id: UUID,
    status: POStatus,
    user_id: UUID,
    received_quantities: dict[UUID, int] | None = None,
    receive_notes: str | None = None,
    ip_address: str | None = None,
) -> PurchaseOrder:
    """Move an order along its lifecycle.

    RECEIVED adds the received quantity of each line (the ordered quantity
    when not given) to available stock. It is terminal, so stock is added once.
    """
    received_quantities = received_quantities or {}
    now = utcnow()

    with atomic(db):
        order = get_purchase_order(db, order_id)
        current = order.status
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Purchase order {order.order_number} cannot move from "
                f"{current.value} to {status.value}"
            )

        unknown = set(received_quantities) - {item.id for item in order.items}
        if unknown:
            raise ValidationError(
                f"Received quantities reference items not on this order: "
                f"{', '.join(sorted(str(u) for u in unknown))}"
            )

        claimed = db.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == order.id, PurchaseOrder.status == current)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidStateError(
                f"Purchase order {order.order_number} was updated by another request"
            )
        db.expire(order, ["status"])

        changes: dict[str, object] = {"from": current.value, "to": status.value}
        if receive_notes:
            order.receive_notes = receive_notes

        if status == POStatus.RECEIVED:
            received: dict[str, int] = {}
            for item in order.items:
                quantity = received_quantities.get(item.id, item.quantity)
                item.received_quantity = quantity
                if quantity == 0:
                    continue
                if item.product_id is None or not release(
                    db, item.product_id, quantity, StockDestination.AVAILABLE
                ):
                    logger.warning(
                        "PO %s: product '%s' no longer exists, %d unit(s) not stocked",
                        order.order_number,
                        item.product_name,
                        quantity,
                    )
                    continue
                received[item.product_name] = quantity
            order.received_date = now
            changes["received"] = received

        log_action(
            db,
            user_id=user_id,
            action="PO_STATUS_CHANGED",
            resource_type="purchase_orders",
            resource_id=order.order_number,
            ip_address=ip_address,
            changes=changes,
        )

    db.refresh(order)
    return order


def generate_low_stock_orders(
    db: Session,
    *,
    user_id: UUID,
    tax_rate: Decimal | None = None,
    ip_address: str | None = None,
) -> list[PurchaseOrder]:
    """One PENDING order per supplier covering every active low-stock product.

    Suggested quantity tops stock up to twice the threshold (at least 1).
    Prices are left at 0 for the buyer to confirm.
    """
    rate = settings.TAX_RATE if tax_rate is None else Decimal(str(tax_rate))

    with atomic(db):
        products = (
            db.query(Product)
            .filter(
                Product.is_archived.is_(False),
                Product.stock <= Product.low_stock_threshold,
            )
            .order_by(Product.name)
            .all()
        )
        by_supplier: dict[UUID | None, list[Product]] = {}
        for product in products:
            by_supplier.setdefault(product.supplier_id, []).append(product)

        orders: list[PurchaseOrder] = []
        for supplier_id, group in by_supplier.items():
            rows = [
                _build_item(p, max(p.low_stock_threshold * 2 - p.stock, 1), None)
                for p in group
            ]
            orders.append(_new_order(
                db,
                items=rows,
                user_id=user_id,
                supplier_id=supplier_id,
                generic_supplier_name=None if supplier_id else UNASSIGNED_SUPPLIER,
                expected_delivery_date=None,
                notes="Auto-generated for low stock. Prices to be confirmed.",
                tax_rate=rate,
                ip_address=ip_address,
            ))

    for order in orders:
        db.refresh(order)
    logger.info("Generated %d low-stock purchase order(s)", len(orders))
    return orders
