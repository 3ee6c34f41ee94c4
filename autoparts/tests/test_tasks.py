"""Beat tasks, run in-process against the test database."""
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker

from autoparts.app.core import database
from autoparts.app.core.timeutils import business_date
from autoparts.app.models.inventory import Product
from autoparts.app.models.quotes import QuotationStatus
from autoparts.app.models.user import User
from autoparts.app.schemas.quotes import QuotationItemIn
from autoparts.app.services.quotations import create_quotation
from autoparts.app.workers.tasks.quotations import expire_quotations
from autoparts.app.workers.tasks.stock import report_low_stock


@pytest.fixture(autouse=True)
def _task_sessions(db: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the tasks' own sessions at the test database."""
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=db.get_bind()))


class TestExpireQuotationsTask:
    def test_lapsed_quotation_expired(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        quotation = create_quotation(
            db,
            items=[QuotationItemIn(product_id=product_a.id, quantity=1)],
            user_id=cashier_user.id,
            tax_rate=Decimal("18"),
        )
        quotation.valid_until = business_date() - timedelta(days=1)
        db.commit()

        assert expire_quotations() == {"expired": 1}

        db.refresh(quotation)
        assert quotation.status == QuotationStatus.EXPIRED


class TestLowStockTask:
    def test_reports_low_skus(
        self,
        db: Session,
        product_a: Product,
        product_b: Product,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        product_a.stock = 1
        db.commit()

        with caplog.at_level(logging.WARNING):
            result = report_low_stock()

        assert result == {"low_stock": ["BRK-PAD-01"]}
        assert "BRK-PAD-01" in caplog.text

    def test_nothing_to_report(self, db: Session, product_a: Product) -> None:
        assert report_low_stock() == {"low_stock": []}
