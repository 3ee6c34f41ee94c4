"""Tests for register close and cash withdrawals."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from autoparts.app.core.exceptions import InvalidStateError, ValidationError
from autoparts.app.core.timeutils import utcnow
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import (
    CashierSession,
    PaymentMethod,
    Sale,
    WithdrawalCategory,
    WithdrawalStatus,
)
from autoparts.app.models.user import User
from autoparts.app.schemas.sales import SaleItemIn
from autoparts.app.services.cash_register import close_cash_register, list_sessions
from autoparts.app.services.sales import cancel_sale, create_sale
from autoparts.app.services.withdrawals import (
    create_withdrawal,
    list_withdrawals,
    update_withdrawal_status,
)

ZERO = Decimal("0")


def _sell(
    db: Session, user: User, product: Product, quantity: int, method: PaymentMethod
) -> Sale:
    return create_sale(
        db,
        items=[SaleItemIn(product_id=product.id, quantity=quantity)],
        payment_method=method,
        user_id=user.id,
    )


def _close(db: Session, user: User, cash: str, card: str = "0", transfer: str = "0") -> CashierSession:
    return close_cash_register(
        db,
        cashier_id=user.id,
        counted_cash=Decimal(cash),
        counted_card=Decimal(card),
        counted_transfer=Decimal(transfer),
    )


# ─── Close register ──────────────────────────────────────────────────────────


class TestCloseRegister:
    def test_withdrawals_reduce_expected_cash(
        self,
        db: Session,
        admin_user: User,
        cashier_user: User,
        product_a: Product,
    ) -> None:
        _sell(db, cashier_user, product_a, 5, PaymentMethod.CASH)
        withdrawal = create_withdrawal(
            db, user=cashier_user, amount=Decimal("50"), reason="Courier fee"
        )
        update_withdrawal_status(
            db,
            withdrawal_id=withdrawal.id,
            status=WithdrawalStatus.APPROVED,
            user_id=admin_user.id,
        )

        session = _close(db, cashier_user, "440")

        assert session.system_total_amount == Decimal("500")
        assert session.total_withdrawals == Decimal("50")
        assert session.system_cash == Decimal("450")
        assert session.difference_cash == Decimal("-10")
        assert session.difference_total == Decimal("-60")
        assert session.withdrawal_ids == [withdrawal.id]

    def test_differences_per_channel(
        self,
        db: Session,
        cashier_user: User,
        product_a: Product,
        product_b: Product,
    ) -> None:
        _sell(db, cashier_user, product_a, 2, PaymentMethod.CASH)
        _sell(db, cashier_user, product_b, 1, PaymentMethod.CARD)
        _sell(db, cashier_user, product_a, 1, PaymentMethod.TRANSFER)

        session = _close(db, cashier_user, "200", "130", "100")

        assert session.system_sales_count == 3
        assert session.system_cash == Decimal("200")
        assert session.system_card == Decimal("120")
        assert session.system_transfer == Decimal("100")
        assert session.difference_cash == ZERO
        assert session.difference_card == Decimal("10")
        assert session.difference_transfer == ZERO
        assert session.difference_total == (
            session.counted_cash + session.counted_card + session.counted_transfer
            - session.system_total_amount
        )

    def test_only_own_live_sales_from_today(
        self,
        db: Session,
        admin_user: User,
        cashier_user: User,
        product_a: Product,
    ) -> None:
        kept = _sell(db, cashier_user, product_a, 1, PaymentMethod.CASH)
        cancelled = _sell(db, cashier_user, product_a, 1, PaymentMethod.CASH)
        cancel_sale(db, cancelled.id, admin_user.id)
        _sell(db, admin_user, product_a, 1, PaymentMethod.CASH)
        old = _sell(db, cashier_user, product_a, 1, PaymentMethod.CASH)
        old.created_at = utcnow() - timedelta(days=2)
        db.commit()

        session = _close(db, cashier_user, "100")

        assert session.sale_ids == [kept.id]
        assert session.system_total_amount == Decimal("100")

    def test_pending_withdrawals_ignored(
        self, db: Session, cashier_user: User, product_a: Product
    ) -> None:
        _sell(db, cashier_user, product_a, 1, PaymentMethod.CASH)
        create_withdrawal(db, user=cashier_user, amount=Decimal("30"), reason="Lunch")

        session = _close(db, cashier_user, "100")

        assert session.total_withdrawals == ZERO
        assert session.system_cash == Decimal("100")

    def test_empty_day_closes_at_zero(self, db: Session, cashier_user: User) -> None:
        session = _close(db, cashier_user, "0")

        assert session.system_sales_count == 0
        assert session.difference_total == ZERO
        assert session.sale_ids == []

    def test_counted_totals_required(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(ValidationError):
            close_cash_register(
                db,
                cashier_id=cashier_user.id,
                counted_cash=Decimal("10"),
                counted_card=None,
                counted_transfer=Decimal("0"),
            )
        assert db.query(CashierSession).count() == 0

    def test_sessions_are_listed_newest_first(self, db: Session, cashier_user: User) -> None:
        first = _close(db, cashier_user, "0")
        second = _close(db, cashier_user, "0")

        assert [s.id for s in list_sessions(db, cashier_id=cashier_user.id)] == [
            second.id,
            first.id,
        ]


# ─── Withdrawals ─────────────────────────────────────────────────────────────


class TestWithdrawals:
    def test_cashier_withdrawal_waits_for_approval(
        self, db: Session, cashier_user: User
    ) -> None:
        withdrawal = create_withdrawal(
            db,
            user=cashier_user,
            amount=Decimal("25.5"),
            reason="  Cleaning supplies ",
            category=WithdrawalCategory.BUSINESS,
        )

        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.authorized_by is None
        assert withdrawal.reason == "Cleaning supplies"
        assert withdrawal.withdrawal_number.startswith("RET-")
        assert withdrawal.withdrawal_number.endswith("-001")

    def test_admin_withdrawal_auto_approved(self, db: Session, admin_user: User) -> None:
        withdrawal = create_withdrawal(
            db, user=admin_user, amount=Decimal("100"), reason="Supplier COD"
        )

        assert withdrawal.status == WithdrawalStatus.APPROVED
        assert withdrawal.authorized_by == admin_user.id

    def test_reason_and_amount_required(self, db: Session, cashier_user: User) -> None:
        with pytest.raises(ValidationError):
            create_withdrawal(db, user=cashier_user, amount=Decimal("0"), reason="x")
        with pytest.raises(ValidationError):
            create_withdrawal(db, user=cashier_user, amount=Decimal("5"), reason="   ")

    def test_status_only_changes_from_pending(
        self, db: Session, admin_user: User, cashier_user: User
    ) -> None:
        withdrawal = create_withdrawal(
            db, user=cashier_user, amount=Decimal("10"), reason="Change"
        )
        update_withdrawal_status(
            db,
            withdrawal_id=withdrawal.id,
            status=WithdrawalStatus.REJECTED,
            user_id=admin_user.id,
        )

        with pytest.raises(InvalidStateError):
            update_withdrawal_status(
                db,
                withdrawal_id=withdrawal.id,
                status=WithdrawalStatus.APPROVED,
                user_id=admin_user.id,
            )

    def test_cashier_sees_only_own(
        self, db: Session, admin_user: User, cashier_user: User
    ) -> None:
        create_withdrawal(db, user=cashier_user, amount=Decimal("10"), reason="Change")
        create_withdrawal(db, user=admin_user, amount=Decimal("40"), reason="Bank run")

        mine = list_withdrawals(db, user=cashier_user)
        everyone = list_withdrawals(db, user=admin_user)

        assert len(mine["withdrawals"]) == 1
        assert len(everyone["withdrawals"]) == 2
        assert everyone["total_amount"] == Decimal("40")
        assert everyone["by_status"] == {"PENDING": 1, "APPROVED": 1, "REJECTED": 0}
