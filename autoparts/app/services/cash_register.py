"""Closing the till: compare what the system expects against what was counted.

The window runs from the start of the business day to the moment of the
close. ``difference_total`` is always ``sum(counted) - system_total_amount``;
approved withdrawals only reduce the expected cash.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import NotFoundError, ValidationError
from autoparts.app.core.timeutils import start_of_business_day, utcnow
from autoparts.app.models.pos import (
    CashierSession,
    CashWithdrawal,
    PaymentMethod,
    Sale,
    SaleStatus,
    WithdrawalStatus,
)
from autoparts.app.services.audit import log_action

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def close_cash_register(
    db: Session,
    *,
    cashier_id: UUID,
    counted_cash: Decimal | None,
    counted_card: Decimal | None,
    counted_transfer: Decimal | None,
    notes: str | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> CashierSession:
    counted = {
        "cash": counted_cash,
        "card": counted_card,
        "transfer": counted_transfer,
    }
    missing = [name for name, value in counted.items() if value is None]
    if missing:
        raise ValidationError(f"Counted totals are required for: {', '.join(missing)}")
    counted = {name: Decimal(str(value)) for name, value in counted.items()}

    now = now or utcnow()
    opened_at = start_of_business_day(now)

    with atomic(db):
        sales = (
            db.query(Sale)
            .filter(
                Sale.created_by == cashier_id,
                Sale.status != SaleStatus.CANCELLED,
                Sale.created_at >= opened_at,
                Sale.created_at < now,
            )
            .order_by(Sale.created_at)
            .all()
        )
        withdrawals = (
            db.query(CashWithdrawal)
            .filter(
                CashWithdrawal.withdrawn_by == cashier_id,
                CashWithdrawal.status == WithdrawalStatus.APPROVED,
                CashWithdrawal.withdrawal_date >= opened_at,
                CashWithdrawal.withdrawal_date < now,
            )
            .all()
        )

        by_method = {method: ZERO for method in PaymentMethod}
        for sale in sales:
            by_method[sale.payment_method] += Decimal(str(sale.total))
        total_amount = sum(by_method.values(), ZERO)
        total_withdrawals = sum((Decimal(str(w.amount)) for w in withdrawals), ZERO)

        system_cash = by_method[PaymentMethod.CASH] - total_withdrawals
        system_card = by_method[PaymentMethod.CARD]
        system_transfer = by_method[PaymentMethod.TRANSFER]

        session = CashierSession(
            cashier_id=cashier_id,
            opened_at=opened_at,
            closed_at=now,
            system_sales_count=len(sales),
            system_total_amount=total_amount,
            system_cash=system_cash,
            system_card=system_card,
            system_transfer=system_transfer,
            total_withdrawals=total_withdrawals,
            counted_cash=counted["cash"],
            counted_card=counted["card"],
            counted_transfer=counted["transfer"],
            difference_cash=counted["cash"] - system_cash,
            difference_card=counted["card"] - system_card,
            difference_transfer=counted["transfer"] - system_transfer,
            difference_total=sum(counted.values(), ZERO) - total_amount,
            notes=notes,
            sales=sales,
            withdrawals=withdrawals,
        )
        db.add(session)
        db.flush()

        log_action(
            db,
            user_id=cashier_id,
            action="CASH_REGISTER_CLOSED",
            resource_type="cashier_sessions",
            resource_id=str(session.id),
            ip_address=ip_address,
            changes={
                "sales_count": len(sales),
                "system_total": str(total_amount),
                "total_withdrawals": str(total_withdrawals),
                "difference_total": str(session.difference_total),
            },
        )

    if session.difference_total != ZERO:
        logger.warning(
            "Register close for %s: difference %s (cash %s)",
            cashier_id,
            session.difference_total,
            session.difference_cash,
        )
    db.refresh(session)
    return session


def get_session(db: Session, session_id: UUID) -> CashierSession:
    session = db.get(CashierSession, session_id)
    if session is None:
        raise NotFoundError("Cashier session not found")
    return session


def list_sessions(
    db: Session, *, cashier_id: UUID | None = None, limit: int = 50
) -> list[CashierSession]:
    query = db.query(CashierSession)
    if cashier_id:
        query = query.filter(CashierSession.cashier_id == cashier_id)
    return query.order_by(CashierSession.closed_at.desc()).limit(limit).all()
