from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from autoparts.app.core.timeutils import business_day_range, utcnow
from autoparts.app.models.pos import CashWithdrawal, WithdrawalCategory, WithdrawalStatus
from autoparts.app.models.user import User
from autoparts.app.services.audit import log_action
from autoparts.app.services.sequences import SequenceKind, insert_numbered

Q = Decimal("0.0001")
ZERO = Decimal("0")


def create_withdrawal(
    db: Session,
    *,
    user: User,
    amount: Decimal,
    reason: str,
    category: WithdrawalCategory = WithdrawalCategory.OTHER,
    receipt_attached: bool = False,
    notes: str | None = None,
    ip_address: str | None = None,
) -> CashWithdrawal:
    """Take cash out of the till. Admins and developers are auto-approved."""
    if amount is None or amount <= ZERO:
        raise ValidationError("Amount must be greater than zero")
    if not reason or not reason.strip():
        raise ValidationError("Reason is required")

    now = utcnow()
    auto_approved = user.is_privileged
    with atomic(db):
        withdrawal = CashWithdrawal(
            amount=Decimal(str(amount)).quantize(Q, rounding=ROUND_HALF_UP),
            reason=reason.strip(),
            category=category,
            status=WithdrawalStatus.APPROVED if auto_approved else WithdrawalStatus.PENDING,
            withdrawn_by=user.id,
            authorized_by=user.id if auto_approved else None,
            withdrawal_date=now,
            receipt_attached=receipt_attached,
            notes=notes,
        )
        number = insert_numbered(
            db, SequenceKind.WITHDRAWAL, withdrawal, "withdrawal_number", now=now
        )
        log_action(
            db,
            user_id=user.id,
            action="CASH_WITHDRAWAL_CREATED",
            resource_type="cash_withdrawals",
            resource_id=number,
            ip_address=ip_address,
            changes={
                "amount": str(withdrawal.amount),
                "category": category.value,
                "status": withdrawal.status.value,
            },
        )

    db.refresh(withdrawal)
    return withdrawal


def update_withdrawal_status(
    db: Session,
    *,
    withdrawal_id: UUID,
    status: WithdrawalStatus,
    user_id: UUID,
    notes: str | None = None,
    ip_address: str | None = None,
) -> CashWithdrawal:
    if status == WithdrawalStatus.PENDING:
        raise ValidationError("Status can only be set to APPROVED or REJECTED")

    with atomic(db):
        withdrawal = db.get(CashWithdrawal, withdrawal_id)
        if withdrawal is None:
            raise NotFoundError("Withdrawal not found")
        if withdrawal.status != WithdrawalStatus.PENDING:
            raise InvalidStateError(
                f"Withdrawal {withdrawal.withdrawal_number} is already {withdrawal.status.value}"
            )
        withdrawal.status = status
        withdrawal.authorized_by = user_id
        if notes:
            withdrawal.notes = notes
        log_action(
            db,
            user_id=user_id,
            action=f"CASH_WITHDRAWAL_{status.value}",
            resource_type="cash_withdrawals",
            resource_id=withdrawal.withdrawal_number,
            ip_address=ip_address,
        )

    db.refresh(withdrawal)
    return withdrawal


def list_withdrawals(
    db: Session,
    *,
    user: User,
    status: WithdrawalStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    """Cashiers see their own withdrawals; admins and developers see everyone's."""
    query = db.query(CashWithdrawal)
    if not user.is_privileged:
        query = query.filter(CashWithdrawal.withdrawn_by == user.id)
    if status:
        query = query.filter(CashWithdrawal.status == status)
    if start_date:
        query = query.filter(
            CashWithdrawal.withdrawal_date >= business_day_range(start_date)[0]
        )
    if end_date:
        query = query.filter(
            CashWithdrawal.withdrawal_date < business_day_range(end_date)[1]
        )
    withdrawals = query.order_by(CashWithdrawal.withdrawal_date.desc()).all()

    by_status = {s.value: 0 for s in WithdrawalStatus}
    for w in withdrawals:
        by_status[w.status.value] += 1
    return {
        "withdrawals": withdrawals,
        "total_amount": sum(
            (
                Decimal(str(w.amount))
                for w in withdrawals
                if w.status == WithdrawalStatus.APPROVED
            ),
            ZERO,
        ),
        "by_status": by_status,
    }
