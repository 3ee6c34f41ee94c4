"""Tests for purchase orders: totals, lifecycle, receiving, low-stock generation."""
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from autoparts.app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from autoparts.app.models.inventory import Product
from autoparts.app.models.supplier import POStatus, PurchaseOrder, Supplier
from autoparts.app.models.user import User
from autoparts.app.schemas.supplier import POItemCreate
from autoparts.app.services.purchasing import (
    UNASSIGNED_SUPPLIER,
    create_purchase_order,
    generate_low_stock_orders,
    update_purchase_order_status,
)


def _order(
    db: Session, user: User, *lines: tuple[Product, int, Decimal | None], **kwargs
) -> PurchaseOrder:
    return create_purchase_order(
        db,
        items=[POItemCreate(product_id=p.id, quantity=q, unit_price=price) for p, q, price in lines],
        user_id=user.id,
        tax_rate=Decimal("18"),
        **kwargs,
    )


def _move(db: Session, user: User, order: PurchaseOrder, status: POStatus, **kwargs) -> PurchaseOrder:
    return update_purchase_order_status(
        db, order_id=order.id, status=status, user_id=user.id, **kwargs
    )


@pytest.fixture()
def order(
    db: Session, admin_user: User, supplier: Supplier, product_a: Product, product_b: Product
) -> PurchaseOrder:
    return _order(
        db,
        admin_user,
        (product_a, 5, Decimal("60")),
        (product_b, 10, Decimal("70")),
        supplier_id=supplier.id,
    )


# ─── Create ──────────────────────────────────────────────────────────────────


class TestCreatePurchaseOrder:
    def test_priced_order_totals(self, order: PurchaseOrder) -> None:
        assert order.order_number == "PO-000001"
        assert order.status == POStatus.PENDING
        assert order.subtotal == Decimal("1000")
        assert order.tax == Decimal("180")
        assert order.total == Decimal("1180")

    def test_unpriced_line_defers_tax_and_total(
        self, db: Session, admin_user: User, product_a: Product, product_b: Product
    ) -> None:
        draft = _order(
            db,
            admin_user,
            (product_a, 5, Decimal("60")),
            (product_b, 2, None),
            generic_supplier_name="Walk-in distributor",
        )

        assert draft.subtotal == Decimal("300")
        assert draft.tax == Decimal("0")
        assert draft.total == Decimal("0")

    def test_unknown_supplier(self, db: Session, admin_user: User, product_a: Product) -> None:
        with pytest.raises(NotFoundError):
            _order(db, admin_user, (product_a, 1, Decimal("60")), supplier_id=uuid.uuid4())

    def test_order_does_not_touch_stock(
        self, db: Session, order: PurchaseOrder, product_a: Product
    ) -> None:
        db.refresh(product_a)
        assert product_a.stock == 10


# ─── Lifecycle ───────────────────────────────────────────────────────────────


class TestReceive:
    def test_receive_restocks_ordered_quantities(
        self,
        db: Session,
        admin_user: User,
        order: PurchaseOrder,
        product_a: Product,
        product_b: Product,
    ) -> None:
        _move(db, admin_user, order, POStatus.SENT)
        received = _move(db, admin_user, order, POStatus.RECEIVED, receive_notes="Box 2 dented")

        db.refresh(product_a)
        db.refresh(product_b)
        assert received.status == POStatus.RECEIVED
        assert received.received_date is not None
        assert received.receive_notes == "Box 2 dented"
        assert product_a.stock == 15
        assert product_b.stock == 30

    def test_receive_with_counted_quantities(
        self,
        db: Session,
        admin_user: User,
        order: PurchaseOrder,
        product_a: Product,
        product_b: Product,
    ) -> None:
        line_a = next(i for i in order.items if i.product_id == product_a.id)

        received = _move(
            db, admin_user, order, POStatus.RECEIVED, received_quantities={line_a.id: 3}
        )

        db.refresh(product_a)
        db.refresh(product_b)
        lines = {i.product_id: i for i in received.items}
        assert lines[product_a.id].received_quantity == 3
        assert lines[product_b.id].received_quantity == 10
        assert product_a.stock == 13
        assert product_b.stock == 30

    def test_received_is_terminal(
        self, db: Session, admin_user: User, order: PurchaseOrder, product_a: Product
    ) -> None:
        _move(db, admin_user, order, POStatus.RECEIVED)

        with pytest.raises(InvalidStateError):
            _move(db, admin_user, order, POStatus.RECEIVED)
        with pytest.raises(InvalidStateError):
            _move(db, admin_user, order, POStatus.CANCELLED)

        db.refresh(product_a)
        assert product_a.stock == 15

    def test_cancelled_order_cannot_be_received(
        self, db: Session, admin_user: User, order: PurchaseOrder, product_a: Product
    ) -> None:
        _move(db, admin_user, order, POStatus.CANCELLED)

        with pytest.raises(InvalidStateError):
            _move(db, admin_user, order, POStatus.RECEIVED)

        db.refresh(product_a)
        assert product_a.stock == 10

    def test_unknown_line_in_received_quantities(
        self, db: Session, admin_user: User, order: PurchaseOrder
    ) -> None:
        with pytest.raises(ValidationError):
            _move(
                db,
                admin_user,
                order,
                POStatus.RECEIVED,
                received_quantities={uuid.uuid4(): 1},
            )

        db.refresh(order)
        assert order.status == POStatus.PENDING


# ─── Low-stock generation ────────────────────────────────────────────────────


class TestLowStockOrders:
    def test_one_order_per_supplier(
        self,
        db: Session,
        admin_user: User,
        supplier: Supplier,
        product_a: Product,
        product_b: Product,
    ) -> None:
        product_a.stock = 2  # threshold 3, has supplier
        product_b.stock = 4  # threshold 5, no supplier
        archived = Product(
            sku="OLD-01",
            name="Discontinued Belt",
            selling_price=Decimal("40"),
            stock=0,
            low_stock_threshold=2,
            is_archived=True,
        )
        db.add(archived)
        db.commit()

        orders = generate_low_stock_orders(db, user_id=admin_user.id, tax_rate=Decimal("18"))

        assert len(orders) == 2
        by_supplier = {o.supplier_id: o for o in orders}
        assigned = by_supplier[supplier.id]
        unassigned = by_supplier[None]
        assert [(i.product_id, i.quantity) for i in assigned.items] == [(product_a.id, 4)]
        assert [(i.product_id, i.quantity) for i in unassigned.items] == [(product_b.id, 6)]
        assert unassigned.generic_supplier_name == UNASSIGNED_SUPPLIER
        assert all(o.status == POStatus.PENDING for o in orders)
        assert all(o.total == Decimal("0") for o in orders)

    def test_nothing_low(self, db: Session, admin_user: User, product_a: Product) -> None:
        assert generate_low_stock_orders(db, user_id=admin_user.id) == []
