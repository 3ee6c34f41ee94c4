"""Returns and exchanges against a completed sale.

Over-return protection lives on ``sale_items.returned_quantity``: each
return claims its units with a conditional UPDATE
(``returned_quantity + q <= quantity``), so two concurrent returns cannot
both take the last unit.  Rejecting a pending return gives its units back.

Stock effects (restock or defective bin, exchange parts out, sale marked
RETURNED) are applied once, either at creation when returns are
auto-completed or at approval when ``RETURNS_REQUIRE_APPROVAL`` is on.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy import update
from sqlalchemy.orm import Session

from autoparts.app.core.config import settings
from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import (
    BusinessRuleViolation,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    OverReturnError,
    ValidationError,
)
from autoparts.app.core.timeutils import business_day_range
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import Sale, SaleItem, SaleStatus
from autoparts.app.models.returns import (
    APPLIED_RETURN_STATUSES,
    Return,
    ReturnExchangeItem,
    ReturnItem,
    ReturnReason,
    RefundMethod,
    ReturnStatus,
)
from autoparts.app.schemas.returns import ExchangeItemIn, ReturnItemIn
from autoparts.app.services.audit import log_action
from autoparts.app.services.sequences import SequenceKind, insert_numbered
from autoparts.app.services.stock import StockDestination, consume, release

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")


def _q(value: Decimal) -> Decimal:
    return value.quantize(Q, rounding=ROUND_HALF_UP)


# ─── Validation helpers ──────────────────────────────────────────────────────


def _allocate_return_lines(
    sale: Sale, items: Sequence[ReturnItemIn]
) -> list[tuple[SaleItem, int, bool]]:
    """Match requested units to sale lines.

    Returns ``(sale_line, quantity, is_defective)`` tuples.  A product sold on
    more than one line is drawn from those lines in order.
    """
    lines_by_product: dict[UUID, list[SaleItem]] = {}
    for line in sale.items:
        if line.product_id is not None:
            lines_by_product.setdefault(line.product_id, []).append(line)

    # Units already claimed by this request, per sale line
    claimed: dict[UUID, int] = {}
    allocations: list[tuple[SaleItem, int, bool]] = []

    for item in items:
        lines = lines_by_product.get(item.product_id)
        if not lines:
            raise ValidationError(
                f"Product {item.product_id} is not part of sale {sale.invoice_number}"
            )
        already_returned = sum(line.returned_quantity for line in lines)
        sold = sum(line.quantity for line in lines)
        requested_before = sum(claimed.get(line.id, 0) for line in lines)
        available = sold - already_returned - requested_before
        if item.quantity > available:
            raise OverReturnError(
                f"Cannot return {item.quantity} unit(s) of '{lines[0].product_name}': "
                f"only {max(available, 0)} available to return "
                f"({already_returned} already returned)"
            )

        remaining = item.quantity
        for line in lines:
            free = line.quantity - line.returned_quantity - claimed.get(line.id, 0)
            if free <= 0:
                continue
            take = min(free, remaining)
            claimed[line.id] = claimed.get(line.id, 0) + take
            allocations.append((line, take, item.is_defective))
            remaining -= take
            if remaining == 0:
                break

    return allocations


def _load_exchange_products(
    db: Session, exchange_items: Sequence[ExchangeItemIn]
) -> dict[UUID, Product]:
    demand: dict[UUID, int] = {}
    for item in exchange_items:
        demand[item.product_id] = demand.get(item.product_id, 0) + item.quantity

    products: dict[UUID, Product] = {}
    for product_id, quantity in demand.items():
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Exchange product {product_id} not found")
        if product.is_archived:
            raise BusinessRuleViolation(
                f"Product '{product.name}' is archived and cannot be exchanged"
            )
        if product.stock < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for exchange product '{product.name}': "
                f"{product.stock} available, {quantity} requested"
            )
        products[product_id] = product
    return products


def _claim_returnable(db: Session, line: SaleItem, quantity: int) -> None:
    result = db.execute(
        update(SaleItem)
        .where(
            SaleItem.id == line.id,
            SaleItem.returned_quantity + quantity <= SaleItem.quantity,
        )
        .values(returned_quantity=SaleItem.returned_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(line, ["returned_quantity"])
        raise OverReturnError(
            f"Cannot return {quantity} unit(s) of '{line.product_name}': "
            f"only {line.quantity - line.returned_quantity} available to return "
            f"({line.returned_quantity} already returned)"
        )
    db.expire(line, ["returned_quantity"])


def _release_returnable(db: Session, sale_item_id: UUID, quantity: int) -> None:
    db.execute(
        update(SaleItem)
        .where(SaleItem.id == sale_item_id)
        .values(returned_quantity=SaleItem.returned_quantity - quantity)
        .execution_options(synchronize_session=False)
    )


# ─── Effects ─────────────────────────────────────────────────────────────────


def _apply_return_effects(db: Session, ret: Return, sale: Sale) -> None:
    """Restock returned units, hand out exchange parts, maybe mark the sale RETURNED."""
    for item in ret.items:
        destination = (
            StockDestination.DEFECTIVE if item.is_defective else StockDestination.AVAILABLE
        )
        if item.product_id is not None and release(
            db, item.product_id, item.quantity, destination
        ):
            continue
        logger.warning(
            "Return %s: product for '%s' no longer exists, %d unit(s) recorded without restock",
            ret.return_number,
            item.product_name,
            item.quantity,
        )

    for ex in ret.exchange_items:
        if ex.product_id is None:
            raise NotFoundError(f"Exchange product '{ex.product_name}' no longer exists")
        consume(db, ex.product_id, ex.quantity)

    if ret.reason == ReturnReason.EXCHANGE:
        return

    db.flush()
    applied = (
        db.query(sa_func.coalesce(sa_func.sum(ReturnItem.quantity), 0))
        .join(Return, ReturnItem.return_id == Return.id)
        .filter(Return.sale_id == sale.id, Return.status.in_(APPLIED_RETURN_STATUSES))
        .scalar()
    )
    sold = sum(line.quantity for line in sale.items)
    if applied >= sold:
        db.execute(
            update(Sale)
            .where(Sale.id == sale.id, Sale.status == SaleStatus.COMPLETED)
            .values(status=SaleStatus.RETURNED)
            .execution_options(synchronize_session=False)
        )
        db.expire(sale, ["status"])


# ─── Operations ──────────────────────────────────────────────────────────────


def create_return(
    db: Session,
    *,
    sale_id: UUID,
    items: Sequence[ReturnItemIn],
    reason: ReturnReason,
    refund_method: RefundMethod,
    user_id: UUID,
    exchange_items: Sequence[ExchangeItemIn] | None = None,
    price_difference: Decimal | None = None,
    notes: str | None = None,
    require_approval: bool | None = None,
    ip_address: str | None = None,
) -> Return:
    """Record a (partial) return against *sale_id*.

    Refunds use the sale-time ``price_at_sale``. With *require_approval*
    (defaults to ``settings.RETURNS_REQUIRE_APPROVAL``) the return is stored
    PENDING and touches no stock until approved; otherwise it is COMPLETED
    and applied immediately.
    """
    if not items:
        raise ValidationError("Return must contain at least one item")
    if exchange_items and reason != ReturnReason.EXCHANGE:
        raise ValidationError("Exchange items are only accepted when the reason is EXCHANGE")
    if reason == ReturnReason.EXCHANGE and not exchange_items:
        raise ValidationError("An EXCHANGE return must list the parts handed out")
    if require_approval is None:
        require_approval = settings.RETURNS_REQUIRE_APPROVAL

    with atomic(db):
        sale = db.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError("Sale not found")
        if sale.status == SaleStatus.CANCELLED:
            raise InvalidStateError(
                f"Sale {sale.invoice_number} is cancelled and cannot be returned"
            )

        # ── Validate everything before writing ───────────────────────────
        allocations = _allocate_return_lines(sale, items)
        exchange_products = _load_exchange_products(db, exchange_items or [])

        return_items: list[ReturnItem] = []
        total_amount = ZERO
        for line, quantity, flagged in allocations:
            price = Decimal(str(line.price_at_sale))
            amount = _q(price * quantity)
            total_amount += amount
            return_items.append(ReturnItem(
                sale_item_id=line.id,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=quantity,
                original_price=price,
                return_amount=amount,
                is_defective=flagged or reason == ReturnReason.DEFECTIVE,
            ))

        exchange_rows: list[ReturnExchangeItem] = []
        exchange_total = ZERO
        for ex in exchange_items or []:
            product = exchange_products[ex.product_id]
            price = Decimal(str(product.selling_price))
            exchange_total += _q(price * ex.quantity)
            exchange_rows.append(ReturnExchangeItem(
                product_id=product.id,
                product_name=product.name,
                quantity=ex.quantity,
                price=price,
            ))

        if reason == ReturnReason.EXCHANGE:
            difference = (
                _q(Decimal(str(price_difference)))
                if price_difference is not None
                else exchange_total - total_amount
            )
        else:
            difference = ZERO

        # ── Claim returnable units (the real over-return guard) ──────────
        for line, quantity, _ in allocations:
            _claim_returnable(db, line, quantity)

        ret = Return(
            sale_id=sale.id,
            customer_id=sale.customer_id,
            reason=reason,
            refund_method=refund_method,
            status=ReturnStatus.PENDING if require_approval else ReturnStatus.COMPLETED,
            total_amount=total_amount,
            price_difference=difference,
            notes=notes,
            processed_by=user_id,
            items=return_items,
            exchange_items=exchange_rows,
        )
        return_number = insert_numbered(db, SequenceKind.RETURN, ret, "return_number")

        if not require_approval:
            _apply_return_effects(db, ret, sale)

        log_action(
            db,
            user_id=user_id,
            action="RETURN_CREATED",
            resource_type="returns",
            resource_id=return_number,
            ip_address=ip_address,
            changes={
                "return_number": return_number,
                "invoice_number": sale.invoice_number,
                "reason": reason.value,
                "status": ret.status.value,
                "total_amount": str(total_amount),
                "price_difference": str(difference),
                "items": [
                    {"product": ri.product_name, "quantity": ri.quantity}
                    for ri in return_items
                ],
            },
        )

    db.refresh(ret)
    logger.info(
        "Return %s (%s) for sale %s, amount %s",
        ret.return_number,
        ret.status.value,
        sale.invoice_number,
        ret.total_amount,
    )
    return ret


def _get_pending_return(db: Session, return_id: UUID) -> Return:
    ret = db.get(Return, return_id)
    if ret is None:
        raise NotFoundError("Return not found")
    if ret.status != ReturnStatus.PENDING:
        raise InvalidStateError(
            f"Return {ret.return_number} is {ret.status.value}; only PENDING returns can change"
        )
    return ret


def _transition(db: Session, ret: Return, target: ReturnStatus, user_id: UUID) -> None:
    claimed = db.execute(
        update(Return)
        .where(Return.id == ret.id, Return.status == ReturnStatus.PENDING)
        .values(status=target, approved_by=user_id)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise InvalidStateError(
            f"Return {ret.return_number} was already processed by another request"
        )
    db.expire(ret, ["status", "approved_by"])


def approve_return(
    db: Session, return_id: UUID, user_id: UUID, ip_address: str | None = None
) -> Return:
    with atomic(db):
        ret = _get_pending_return(db, return_id)
        _transition(db, ret, ReturnStatus.APPROVED, user_id)
        sale = db.get(Sale, ret.sale_id)
        _apply_return_effects(db, ret, sale)
        log_action(
            db,
            user_id=user_id,
            action="RETURN_APPROVED",
            resource_type="returns",
            resource_id=ret.return_number,
            ip_address=ip_address,
            changes={"total_amount": str(ret.total_amount)},
        )
    db.refresh(ret)
    return ret


def reject_return(
    db: Session,
    return_id: UUID,
    user_id: UUID,
    reason: str | None = None,
    ip_address: str | None = None,
) -> Return:
    """Reject a pending return. No stock moves; its units become returnable again."""
    with atomic(db):
        ret = _get_pending_return(db, return_id)
        _transition(db, ret, ReturnStatus.REJECTED, user_id)
        for item in ret.items:
            _release_returnable(db, item.sale_item_id, item.quantity)
        if reason:
            ret.notes = f"{ret.notes}\n{reason}" if ret.notes else reason
        log_action(
            db,
            user_id=user_id,
            action="RETURN_REJECTED",
            resource_type="returns",
            resource_id=ret.return_number,
            ip_address=ip_address,
            changes={"reason": reason},
        )
    db.refresh(ret)
    return ret


# ─── Read side ───────────────────────────────────────────────────────────────


def get_return(db: Session, return_id: UUID) -> Return:
    ret = db.get(Return, return_id)
    if ret is None:
        raise NotFoundError("Return not found")
    return ret


def list_returns(
    db: Session,
    *,
    sale_id: UUID | None = None,
    status: ReturnStatus | None = None,
    reason: ReturnReason | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Return]:
    query = db.query(Return)
    if sale_id:
        query = query.filter(Return.sale_id == sale_id)
    if status:
        query = query.filter(Return.status == status)
    if reason:
        query = query.filter(Return.reason == reason)
    if start_date:
        query = query.filter(Return.created_at >= business_day_range(start_date)[0])
    if end_date:
        query = query.filter(Return.created_at < business_day_range(end_date)[1])
    return query.order_by(Return.created_at.desc()).offset(offset).limit(limit).all()


def returnable_items(db: Session, sale_id: UUID) -> dict[str, Any]:
    """Per sale line: sold, already claimed by returns, and still returnable."""
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return {
        "sale_id": sale.id,
        "invoice_number": sale.invoice_number,
        "status": sale.status.value,
        "items": [
            {
                "sale_item_id": line.id,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "returned_quantity": line.returned_quantity,
                "returnable_quantity": (
                    0
                    if sale.status == SaleStatus.CANCELLED or line.product_id is None
                    else line.quantity - line.returned_quantity
                ),
                "price_at_sale": line.price_at_sale,
            }
            for line in sale.items
        ],
    }


def return_stats(
    db: Session, start_date: date | None = None, end_date: date | None = None
) -> dict[str, Any]:
    query = db.query(Return)
    if start_date:
        query = query.filter(Return.created_at >= business_day_range(start_date)[0])
    if end_date:
        query = query.filter(Return.created_at < business_day_range(end_date)[1])
    returns = query.all()

    by_status = {s.value: 0 for s in ReturnStatus}
    by_reason = {r.value: 0 for r in ReturnReason}
    total_amount = ZERO
    for ret in returns:
        by_status[ret.status.value] += 1
        by_reason[ret.reason.value] += 1
        if ret.status != ReturnStatus.REJECTED:
            total_amount += Decimal(str(ret.total_amount))

    return {
        "total_returns": len(returns),
        "total_amount": total_amount,
        "by_status": by_status,
        "by_reason": by_reason,
    }
