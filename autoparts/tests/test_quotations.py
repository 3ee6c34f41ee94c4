"""Tests for quotations and their conversion into sales."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from autoparts.app.core.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    ValidationError,
)
from autoparts.app.core.timeutils import business_date
from autoparts.app.models.customer import Customer
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import PaymentMethod, Sale
from autoparts.app.models.quotes import Quotation, QuotationStatus
from autoparts.app.models.user import User
from autoparts.app.schemas.quotes import QuotationItemIn
from autoparts.app.services.quotations import (
    convert_to_sale,
    create_quotation,
    expire_quotations,
    update_quotation_status,
)


def _quote(db: Session, user: User, *items: QuotationItemIn, **kwargs) -> Quotation:
    return create_quotation(db, items=list(items), user_id=user.id, tax_rate=Decimal("18"), **kwargs)


def _convert(db: Session, user: User, quotation: Quotation, **kwargs) -> Sale:
    return convert_to_sale(
        db,
        quotation_id=quotation.id,
        payment_method=PaymentMethod.CASH,
        user_id=user.id,
        **kwargs,
    )


@pytest.fixture()
def quotation(
    db: Session, cashier_user: User, product_a: Product, product_b: Product, customer: Customer
) -> Quotation:
    return _quote(
        db,
        cashier_user,
        QuotationItemIn(product_id=product_a.id, quantity=2),
        QuotationItemIn(product_id=product_b.id, quantity=1, discount=Decimal("10")),
        customer_id=customer.id,
    )


# ─── Create ──────────────────────────────────────────────────────────────────


class TestCreateQuotation:
    def test_totals_and_defaults(self, quotation: Quotation) -> None:
        assert quotation.quotation_number == "COT-000001"
        assert quotation.status == QuotationStatus.PENDING
        assert quotation.subtotal == Decimal("308")
        assert quotation.tax == Decimal("55.44")
        assert quotation.total == Decimal("363.44")
        assert quotation.valid_until == business_date() + timedelta(days=15)

    def test_negotiated_unit_price(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        q = _quote(
            db,
            cashier_user,
            QuotationItemIn(product_id=product_a.id, quantity=3, unit_price=Decimal("90")),
        )
        assert q.items[0].unit_price == Decimal("90")
        assert q.subtotal == Decimal("270")

    def test_quote_does_not_reserve_stock(
        self, db: Session, quotation: Quotation, product_a: Product
    ) -> None:
        db.refresh(product_a)
        assert product_a.stock == 10

    def test_past_validity_rejected(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        with pytest.raises(ValidationError):
            _quote(
                db,
                cashier_user,
                QuotationItemIn(product_id=product_a.id, quantity=1),
                valid_until=business_date() - timedelta(days=1),
            )


# ─── Status ──────────────────────────────────────────────────────────────────


class TestQuotationStatus:
    def test_approve_pending(
        self, db: Session, admin_user: User, quotation: Quotation
    ) -> None:
        approved = update_quotation_status(
            db, quotation_id=quotation.id, status=QuotationStatus.APPROVED, user_id=admin_user.id
        )
        assert approved.status == QuotationStatus.APPROVED
        assert approved.processed_by == admin_user.id

    def test_only_pending_can_change(
        self, db: Session, admin_user: User, quotation: Quotation
    ) -> None:
        update_quotation_status(
            db, quotation_id=quotation.id, status=QuotationStatus.REJECTED, user_id=admin_user.id
        )
        with pytest.raises(InvalidStateError):
            update_quotation_status(
                db,
                quotation_id=quotation.id,
                status=QuotationStatus.APPROVED,
                user_id=admin_user.id,
            )

    def test_converted_is_not_a_manual_status(
        self, db: Session, admin_user: User, quotation: Quotation
    ) -> None:
        with pytest.raises(ValidationError):
            update_quotation_status(
                db,
                quotation_id=quotation.id,
                status=QuotationStatus.CONVERTED,
                user_id=admin_user.id,
            )


# ─── Convert ─────────────────────────────────────────────────────────────────


class TestConvertToSale:
    def test_convert_uses_quoted_prices(
        self,
        db: Session,
        cashier_user: User,
        quotation: Quotation,
        product_a: Product,
        product_b: Product,
        customer: Customer,
    ) -> None:
        product_a.selling_price = Decimal("130")
        db.commit()

        sale = _convert(db, cashier_user, quotation)

        db.refresh(quotation)
        db.refresh(product_a)
        db.refresh(product_b)
        assert quotation.status == QuotationStatus.CONVERTED
        assert quotation.converted_sale_id == sale.id
        assert quotation.converted_at is not None
        assert sale.customer_id == customer.id
        lines = {item.product_id: item for item in sale.items}
        assert lines[product_a.id].price_at_sale == Decimal("100")
        assert lines[product_b.id].discount_applied == Decimal("10")
        assert sale.total == Decimal("308")
        assert product_a.stock == 8
        assert product_b.stock == 19

    def test_convert_twice_rejected(
        self, db: Session, cashier_user: User, quotation: Quotation, product_a: Product
    ) -> None:
        _convert(db, cashier_user, quotation)

        with pytest.raises(InvalidStateError):
            _convert(db, cashier_user, quotation)

        db.refresh(product_a)
        assert product_a.stock == 8
        assert db.query(Sale).count() == 1

    def test_stock_rechecked_at_conversion(
        self,
        db: Session,
        cashier_user: User,
        quotation: Quotation,
        product_a: Product,
    ) -> None:
        product_a.stock = 1
        db.commit()

        with pytest.raises(InsufficientStockError):
            _convert(db, cashier_user, quotation)

        db.refresh(quotation)
        assert quotation.status == QuotationStatus.PENDING
        assert quotation.converted_sale_id is None
        assert db.query(Sale).count() == 0

    def test_rejected_quotation_not_convertible(
        self, db: Session, admin_user: User, cashier_user: User, quotation: Quotation
    ) -> None:
        update_quotation_status(
            db, quotation_id=quotation.id, status=QuotationStatus.REJECTED, user_id=admin_user.id
        )
        with pytest.raises(InvalidStateError):
            _convert(db, cashier_user, quotation)

    def test_lapsed_quotation_not_convertible(
        self, db: Session, cashier_user: User, quotation: Quotation
    ) -> None:
        quotation.valid_until = business_date() - timedelta(days=1)
        db.commit()

        with pytest.raises(InvalidStateError):
            _convert(db, cashier_user, quotation)

    def test_global_discount_on_conversion(
        self, db: Session, cashier_user: User, quotation: Quotation
    ) -> None:
        sale = _convert(db, cashier_user, quotation, global_discount_amount=Decimal("8"))
        assert sale.total == Decimal("300")


# ─── Expiry ──────────────────────────────────────────────────────────────────


class TestExpireQuotations:
    def test_expires_only_open_and_lapsed(
        self,
        db: Session,
        cashier_user: User,
        product_a: Product,
        quotation: Quotation,
    ) -> None:
        lapsed = _quote(db, cashier_user, QuotationItemIn(product_id=product_a.id, quantity=1))
        lapsed.valid_until = business_date() - timedelta(days=3)
        db.commit()

        assert expire_quotations(db) == 1

        db.refresh(lapsed)
        db.refresh(quotation)
        assert lapsed.status == QuotationStatus.EXPIRED
        assert quotation.status == QuotationStatus.PENDING
