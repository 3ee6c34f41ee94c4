"""Tests for catalog guards: SKU uniqueness, archive versus delete."""
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from autoparts.app.core.exceptions import BusinessRuleViolation, DuplicateError
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import PaymentMethod
from autoparts.app.models.user import User
from autoparts.app.schemas.sales import SaleItemIn
from autoparts.app.services.products import (
    archive_product,
    create_product,
    delete_product,
    low_stock_products,
    reference_count,
)
from autoparts.app.services.sales import create_sale


class TestCreateProduct:
    def test_sku_normalised(self, db: Session, admin_user: User) -> None:
        product = create_product(
            db, sku="  spk-plug-4 ", name="Spark Plug", selling_price=Decimal("8.5"), user_id=admin_user.id
        )
        assert product.sku == "SPK-PLUG-4"
        assert product.defective_stock == 0

    def test_duplicate_sku_rejected(
        self, db: Session, admin_user: User, product_a: Product
    ) -> None:
        with pytest.raises(DuplicateError):
            create_product(
                db,
                sku="brk-pad-01",
                name="Another pad",
                selling_price=Decimal("10"),
                user_id=admin_user.id,
            )


class TestDeleteProduct:
    def test_unreferenced_product_deleted(
        self, db: Session, admin_user: User, product_b: Product
    ) -> None:
        product_id = product_b.id
        delete_product(db, product_id, admin_user.id)

        assert db.get(Product, product_id) is None

    def test_sold_product_must_be_archived(
        self, db: Session, admin_user: User, cashier_user: User, product_a: Product
    ) -> None:
        create_sale(
            db,
            items=[SaleItemIn(product_id=product_a.id, quantity=1)],
            payment_method=PaymentMethod.CASH,
            user_id=cashier_user.id,
        )
        assert reference_count(db, product_a.id) == 1

        with pytest.raises(BusinessRuleViolation):
            delete_product(db, product_a.id, admin_user.id)

        archived = archive_product(db, product_a.id, admin_user.id)
        assert archived.is_archived is True
        assert db.get(Product, product_a.id) is not None


class TestLowStock:
    def test_low_stock_excludes_archived(
        self, db: Session, admin_user: User, product_a: Product, product_b: Product
    ) -> None:
        product_a.stock = 3
        product_b.stock = 1
        db.commit()
        archive_product(db, product_b.id, admin_user.id)

        assert [p.id for p in low_stock_products(db)] == [product_a.id]
