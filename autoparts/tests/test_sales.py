"""Tests for the sale engine: create, cancel, and the read side."""
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from autoparts.app.core.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflictError,
    InfrastructureError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from autoparts.app.models.customer import Customer
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import PaymentMethod, Sale, SaleStatus
from autoparts.app.models.returns import RefundMethod, ReturnReason
from autoparts.app.models.user import User
from autoparts.app.schemas.returns import ReturnItemIn
from autoparts.app.schemas.sales import SaleItemIn
from autoparts.app.services import sales as sales_service
from autoparts.app.services.audit import audit_trail
from autoparts.app.services.returns import create_return
from autoparts.app.services.sales import (
    apply_global_discount,
    cancel_sale,
    cashier_day_summary,
    create_sale,
    list_sales,
    price_line,
)


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _sell(
    db: Session,
    user: User,
    *lines: tuple[Product, int],
    payment_method: PaymentMethod = PaymentMethod.CASH,
    **kwargs,
) -> Sale:
    return create_sale(
        db,
        items=[SaleItemIn(product_id=p.id, quantity=q) for p, q in lines],
        payment_method=payment_method,
        user_id=user.id,
        **kwargs,
    )


# ─── Pricing ─────────────────────────────────────────────────────────────────


class TestPricing:
    def test_percentages_compound(self) -> None:
        subtotal, discount = price_line(Decimal("100"), 1, Decimal("10"), Decimal("5"))
        assert subtotal == Decimal("85.5000")
        assert discount == Decimal("14.5000")

    def test_global_percentage_applies_after_line_discounts(self) -> None:
        discount, total = apply_global_discount(
            Decimal("1000"), Decimal("100"), Decimal("10")
        )
        assert discount == Decimal("90.0000")
        assert total == Decimal("810.0000")

    def test_explicit_amount_wins_over_percentage(self) -> None:
        discount, total = apply_global_discount(
            Decimal("500"), Decimal("0"), Decimal("50"), Decimal("20")
        )
        assert discount == Decimal("20.0000")
        assert total == Decimal("480.0000")

    def test_discount_larger_than_total_rejected(self) -> None:
        with pytest.raises(BusinessRuleViolation):
            apply_global_discount(Decimal("100"), Decimal("0"), global_discount_amount=Decimal("150"))


# ─── Create ──────────────────────────────────────────────────────────────────


class TestCreateSale:
    def test_simple_sale_reserves_stock(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 3))

        db.refresh(product_a)
        assert product_a.stock == 7
        assert product_a.sold_count == 3
        assert sale.total == Decimal("300")
        assert sale.subtotal == Decimal("300")
        assert sale.status == SaleStatus.COMPLETED
        assert sale.invoice_number.startswith("INV")
        assert len(sale.invoice_number) == len("INVyymmdd0001")
        assert sale.items[0].price_at_sale == Decimal("100")
        assert sale.items[0].returned_quantity == 0

    def test_global_discount_percentage(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 10), global_discount_pct=Decimal("10"))

        assert sale.subtotal == Decimal("1000")
        assert sale.total_discount == Decimal("100")
        assert sale.global_discount_amount == Decimal("100")
        assert sale.total == Decimal("900")

    def test_product_and_line_discounts(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        product_a.discount_percentage = Decimal("10")
        db.commit()

        sale = create_sale(
            db,
            items=[SaleItemIn(product_id=product_a.id, quantity=1, discount=Decimal("5"))],
            payment_method=PaymentMethod.CARD,
            user_id=cashier_user.id,
        )

        line = sale.items[0]
        assert line.price_at_sale == Decimal("100")
        assert line.discount_applied == Decimal("15")
        assert line.subtotal == Decimal("85.5")
        assert sale.total_discount == Decimal("14.5")
        assert sale.total == Decimal("85.5")

    def test_invoice_numbers_are_sequential(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        first = _sell(db, cashier_user, (product_a, 1))
        second = _sell(db, cashier_user, (product_a, 1))

        assert first.invoice_number[:-4] == second.invoice_number[:-4]
        assert int(second.invoice_number[-4:]) == int(first.invoice_number[-4:]) + 1

    def test_insufficient_stock_on_later_line_changes_nothing(
        self, db: Session, cashier_user: User, product_a: Product, product_b: Product
    ) -> None:
        with pytest.raises(InsufficientStockError) as exc:
            _sell(db, cashier_user, (product_a, 2), (product_b, 21))

        assert "Oil Filter" in exc.value.message
        db.refresh(product_a)
        db.refresh(product_b)
        assert product_a.stock == 10
        assert product_b.stock == 20
        assert db.query(Sale).count() == 0

    def test_repeated_product_checked_against_combined_quantity(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        with pytest.raises(InsufficientStockError):
            _sell(db, cashier_user, (product_a, 6), (product_a, 5))

        db.refresh(product_a)
        assert product_a.stock == 10

    def test_failure_after_reserving_rolls_stock_back(
        self,
        db: Session,
        cashier_user: User,
        product_a: Product,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def _collide(*args, **kwargs) -> str:
            raise ConcurrencyConflictError("Could not allocate a unique invoice number")

        monkeypatch.setattr(sales_service, "insert_numbered", _collide)

        with pytest.raises(ConcurrencyConflictError):
            _sell(db, cashier_user, (product_a, 4))

        db.refresh(product_a)
        assert product_a.stock == 10
        assert product_a.sold_count == 0
        assert db.query(Sale).count() == 0

    def test_lost_connection_is_infrastructure_error(
        self,
        db: Session,
        cashier_user: User,
        product_a: Product,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def _down(*args, **kwargs) -> str:
            raise OperationalError("INSERT INTO sales", {}, Exception("server closed the connection"))

        monkeypatch.setattr(sales_service, "insert_numbered", _down)

        with pytest.raises(InfrastructureError):
            _sell(db, cashier_user, (product_a, 4))

        db.refresh(product_a)
        assert product_a.stock == 10

    def test_archived_product_cannot_be_sold(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        product_a.is_archived = True
        db.commit()

        with pytest.raises(BusinessRuleViolation):
            _sell(db, cashier_user, (product_a, 1))

    def test_unknown_customer(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        with pytest.raises(NotFoundError):
            _sell(db, cashier_user, (product_a, 1), customer_id=uuid.uuid4())

    def test_empty_sale_rejected(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(ValidationError):
            create_sale(db, items=[], payment_method=PaymentMethod.CASH, user_id=cashier_user.id)

    def test_customer_totals_updated(
        self, db: Session, cashier_user: User, product_a: Product, customer: Customer
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 2), customer_id=customer.id)

        db.refresh(customer)
        assert sale.customer_id == customer.id
        assert customer.total_purchases == Decimal("200")
        assert customer.last_purchase_at is not None

    def test_sale_is_audited(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 1))

        [entry] = audit_trail(db, "sales", sale.invoice_number)
        assert entry.action == "SALE_COMPLETED"
        assert entry.user_id == cashier_user.id
        assert Decimal(entry.changes["total"]) == Decimal("100")
        assert entry.changes["payment_method"] == "CASH"

    def test_price_snapshot_survives_catalog_change(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 1))
        product_a.selling_price = Decimal("150")
        db.commit()

        db.refresh(sale)
        assert sale.items[0].price_at_sale == Decimal("100")
        assert sale.total == Decimal("100")


# ─── Cancel ──────────────────────────────────────────────────────────────────


class TestCancelSale:
    def test_cancel_restores_stock(
        self, db: Session, admin_user: User, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 3))

        cancelled, skipped = cancel_sale(db, sale.id, admin_user.id)

        db.refresh(product_a)
        assert product_a.stock == 10
        assert cancelled.status == SaleStatus.CANCELLED
        assert cancelled.cancelled_by == admin_user.id
        assert cancelled.cancelled_at is not None
        assert skipped == 0

    def test_cancel_twice_rejected(
        self, db: Session, admin_user: User, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 3))
        cancel_sale(db, sale.id, admin_user.id)

        with pytest.raises(InvalidStateError):
            cancel_sale(db, sale.id, admin_user.id)

        db.refresh(product_a)
        assert product_a.stock == 10

    def test_cancel_after_return_rejected(
        self, db: Session, admin_user: User, cashier_user: User, product_a: Product
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 3))
        create_return(
            db,
            sale_id=sale.id,
            items=[ReturnItemIn(product_id=product_a.id, quantity=1)],
            reason=ReturnReason.NOT_NEEDED,
            refund_method=RefundMethod.CASH,
            user_id=cashier_user.id,
            require_approval=False,
        )

        with pytest.raises(InvalidStateError):
            cancel_sale(db, sale.id, admin_user.id)

        db.refresh(product_a)
        assert product_a.stock == 8

    def test_cancel_reverses_customer_total(
        self,
        db: Session,
        admin_user: User,
        cashier_user: User,
        product_a: Product,
        customer: Customer,
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 2), customer_id=customer.id)
        cancel_sale(db, sale.id, admin_user.id)

        db.refresh(customer)
        assert customer.total_purchases == Decimal("0")

    def test_deleted_product_line_is_skipped(
        self,
        db: Session,
        admin_user: User,
        cashier_user: User,
        product_a: Product,
        product_b: Product,
    ) -> None:
        sale = _sell(db, cashier_user, (product_a, 1), (product_b, 2))
        sale.items[1].product_id = None
        db.commit()

        _, skipped = cancel_sale(db, sale.id, admin_user.id)

        db.refresh(product_a)
        db.refresh(product_b)
        assert skipped == 1
        assert product_a.stock == 10
        assert product_b.stock == 18

    def test_cancel_unknown_sale(self, db: Session, admin_user: User) -> None:
        with pytest.raises(NotFoundError):
            cancel_sale(db, uuid.uuid4(), admin_user.id)


# ─── Read side ───────────────────────────────────────────────────────────────


class TestSaleQueries:
    def test_day_summary_groups_by_payment_method(
        self, db: Session, cashier_user: User, admin_user: User, product_a: Product
    ) -> None:
        _sell(db, cashier_user, (product_a, 1), payment_method=PaymentMethod.CASH)
        _sell(db, cashier_user, (product_a, 2), payment_method=PaymentMethod.CARD)
        _sell(db, admin_user, (product_a, 1), payment_method=PaymentMethod.CASH)

        summary = cashier_day_summary(db, cashier_user.id)

        assert summary["sales_count"] == 2
        assert summary["total_amount"] == Decimal("300")
        assert summary["by_payment_method"]["CASH"]["count"] == 1
        assert summary["by_payment_method"]["CARD"]["total"] == Decimal("200")
        assert summary["by_payment_method"]["TRANSFER"]["count"] == 0

    def test_list_filters(
        self, db: Session, cashier_user: User, admin_user: User, product_a: Product
    ) -> None:
        first = _sell(db, cashier_user, (product_a, 1))
        _sell(db, admin_user, (product_a, 1), payment_method=PaymentMethod.TRANSFER)

        assert len(list_sales(db)) == 2
        assert [s.id for s in list_sales(db, cashier_id=cashier_user.id)] == [first.id]
        assert len(list_sales(db, payment_method=PaymentMethod.TRANSFER)) == 1
        assert [s.id for s in list_sales(db, search=first.invoice_number)] == [first.id]
