from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import (
    BusinessRuleViolation,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from autoparts.app.core.timeutils import business_date, business_day_range, utcnow
from autoparts.app.models.customer import Customer
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import PaymentMethod, Sale, SaleItem, SaleStatus
from autoparts.app.models.returns import Return, ReturnStatus
from autoparts.app.schemas.sales import SaleItemIn
from autoparts.app.services.audit import log_action
from autoparts.app.services.sequences import SequenceKind, insert_numbered
from autoparts.app.services.stock import StockDestination, release, reserve

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _q(value: Decimal) -> Decimal:
    return value.quantize(Q, rounding=ROUND_HALF_UP)


# ─── Pricing ─────────────────────────────────────────────────────────────────


def price_line(
    base_price: Decimal, quantity: int, *discount_pcts: Decimal
) -> tuple[Decimal, Decimal]:
    """Return ``(line_subtotal, line_discount)``.

    Percentage discounts compound: 10% then 5% on 100 gives 85.50.
    """
    base = Decimal(str(base_price))
    unit = base
    for pct in discount_pcts:
        unit = unit * (HUNDRED - Decimal(str(pct))) / HUNDRED
    gross = _q(base * quantity)
    line_subtotal = _q(unit * quantity)
    return line_subtotal, gross - line_subtotal


def apply_global_discount(
    subtotal: Decimal,
    item_discount: Decimal,
    global_discount_pct: Decimal = ZERO,
    global_discount_amount: Decimal | None = None,
) -> tuple[Decimal, Decimal]:
    """Return ``(global_discount, total)``.

    An explicit amount wins when it is greater than zero; otherwise the
    percentage is taken of the amount left after line discounts.
    """
    after_items = subtotal - item_discount
    if global_discount_amount is not None and global_discount_amount > ZERO:
        global_discount = _q(Decimal(str(global_discount_amount)))
    else:
        pct = Decimal(str(global_discount_pct or 0))
        global_discount = _q(after_items * pct / HUNDRED)

    total = after_items - global_discount
    if total < ZERO:
        raise BusinessRuleViolation(
            f"Global discount ({global_discount}) exceeds the amount due ({after_items})"
        )
    return global_discount, total


# ─── Validation (read-only) ──────────────────────────────────────────────────


def _require_customer(db: Session, customer_id: UUID) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def load_sellable_products(
    db: Session, demand: dict[UUID, int]
) -> dict[UUID, Product]:
    """Load every product in *demand* and check it can cover the requested units.

    *demand* maps product id to the total units requested across all lines,
    so a product listed twice is checked once against its combined quantity.
    """
    products = {
        p.id: p
        for p in db.query(Product).filter(Product.id.in_(list(demand))).all()
    }
    for product_id, quantity in demand.items():
        product = products.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if product.is_archived:
            raise BusinessRuleViolation(
                f"Product '{product.name}' is archived and cannot be sold"
            )
        if product.stock < quantity:
            raise InsufficientStockError(
                f"Insufficient stock for '{product.name}': "
                f"{product.stock} available, {quantity} requested"
            )
    return products


def _price_sale_items(db: Session, items: Sequence[SaleItemIn]) -> list[dict[str, Any]]:
    demand: dict[UUID, int] = {}
    for item in items:
        demand[item.product_id] = demand.get(item.product_id, 0) + item.quantity
    products = load_sellable_products(db, demand)

    lines: list[dict[str, Any]] = []
    for item in items:
        product = products[item.product_id]
        product_discount = Decimal(str(product.discount_percentage))
        line_subtotal, line_discount = price_line(
            product.selling_price, item.quantity, product_discount, item.discount
        )
        lines.append({
            "product_id": product.id,
            "product_name": product.name,
            "quantity": item.quantity,
            "price_at_sale": Decimal(str(product.selling_price)),
            "discount_applied": product_discount + item.discount,
            "subtotal": line_subtotal,
            "line_discount": line_discount,
        })
    return lines


# ─── Commit path (shared with quotation conversion) ──────────────────────────


def commit_sale(
    db: Session,
    *,
    lines: list[dict[str, Any]],
    payment_method: PaymentMethod,
    user_id: UUID,
    customer_id: UUID | None,
    global_discount_pct: Decimal = ZERO,
    global_discount_amount: Decimal | None = None,
    notes: str | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> Sale:
    """Price, reserve stock, number and persist a sale. Does NOT commit.

    *lines* must already be validated; each carries ``product_id``,
    ``product_name``, ``quantity``, ``price_at_sale``, ``discount_applied``,
    ``subtotal`` and ``line_discount``.
    """
    now = now or utcnow()

    subtotal = sum((_q(ln["price_at_sale"] * ln["quantity"]) for ln in lines), ZERO)
    item_discount = sum((ln["line_discount"] for ln in lines), ZERO)
    global_discount, total = apply_global_discount(
        subtotal, item_discount, global_discount_pct, global_discount_amount
    )

    # ── Stock: every line was validated, now mutate ──────────────────────
    for ln in lines:
        reserve(db, ln["product_id"], ln["quantity"])

    sale = Sale(
        customer_id=customer_id,
        subtotal=subtotal,
        total_discount=item_discount + global_discount,
        global_discount_amount=global_discount,
        total=total,
        payment_method=payment_method,
        status=SaleStatus.COMPLETED,
        notes=notes,
        created_by=user_id,
        created_at=now,
        items=[
            SaleItem(
                position=position,
                product_id=ln["product_id"],
                product_name=ln["product_name"],
                quantity=ln["quantity"],
                price_at_sale=ln["price_at_sale"],
                discount_applied=ln["discount_applied"],
                subtotal=ln["subtotal"],
                returned_quantity=0,
            )
            for position, ln in enumerate(lines)
        ],
    )
    invoice_number = insert_numbered(
        db, SequenceKind.INVOICE, sale, "invoice_number", now=now
    )

    # ── Customer aggregate ──────────────────────────────────────────────
    if customer_id is not None:
        db.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(
                total_purchases=Customer.total_purchases + total,
                last_purchase_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    log_action(
        db,
        user_id=user_id,
        action="SALE_COMPLETED",
        resource_type="sales",
        resource_id=invoice_number,
        ip_address=ip_address,
        changes={
            "invoice_number": invoice_number,
            "item_count": len(lines),
            "subtotal": subtotal,
            "total_discount": item_discount + global_discount,
            "total": total,
            "payment_method": payment_method,
            "customer_id": customer_id,
        },
    )
    return sale


# ─── Operations ──────────────────────────────────────────────────────────────


def create_sale(
    db: Session,
    *,
    items: Sequence[SaleItemIn],
    payment_method: PaymentMethod,
    user_id: UUID,
    customer_id: UUID | None = None,
    global_discount_pct: Decimal = ZERO,
    global_discount_amount: Decimal | None = None,
    notes: str | None = None,
    ip_address: str | None = None,
) -> Sale:
    """Validate every line, then reserve stock and persist, in one transaction."""
    if not items:
        raise ValidationError("Sale must contain at least one item")

    with atomic(db):
        if customer_id is not None:
            _require_customer(db, customer_id)
        lines = _price_sale_items(db, items)
        sale = commit_sale(
            db,
            lines=lines,
            payment_method=payment_method,
            user_id=user_id,
            customer_id=customer_id,
            global_discount_pct=global_discount_pct,
            global_discount_amount=global_discount_amount,
            notes=notes,
            ip_address=ip_address,
        )

    db.refresh(sale)
    logger.info("Sale %s completed by %s, total %s", sale.invoice_number, user_id, sale.total)
    return sale


def cancel_sale(
    db: Session,
    sale_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> tuple[Sale, int]:
    """Cancel a sale and put its units back on the shelf.

    Returns ``(sale, skipped_items)`` where *skipped_items* counts lines whose
    product was deleted in the meantime and could not be restocked.
    """
    now = utcnow()
    with atomic(db):
        sale = db.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError("Sale not found")
        if sale.status == SaleStatus.CANCELLED:
            raise InvalidStateError(f"Sale {sale.invoice_number} is already cancelled")

        open_returns = (
            db.query(Return.id)
            .filter(Return.sale_id == sale.id, Return.status != ReturnStatus.REJECTED)
            .count()
        )
        if open_returns:
            raise InvalidStateError(
                f"Sale {sale.invoice_number} has {open_returns} return(s); "
                "it can no longer be cancelled"
            )

        # Claim the transition before touching stock so two concurrent
        # cancels cannot both restore it
        claimed = db.execute(
            update(Sale)
            .where(Sale.id == sale.id, Sale.status != SaleStatus.CANCELLED)
            .values(status=SaleStatus.CANCELLED, cancelled_at=now, cancelled_by=user_id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidStateError(f"Sale {sale.invoice_number} is already cancelled")

        skipped = 0
        for item in sale.items:
            if item.product_id is not None and release(
                db, item.product_id, item.quantity, StockDestination.AVAILABLE
            ):
                continue
            skipped += 1
            logger.warning(
                "Cancel %s: product for line '%s' no longer exists, %d unit(s) not restocked",
                sale.invoice_number,
                item.product_name,
                item.quantity,
            )

        if sale.customer_id is not None:
            db.execute(
                update(Customer)
                .where(Customer.id == sale.customer_id)
                .values(total_purchases=Customer.total_purchases - sale.total)
                .execution_options(synchronize_session=False)
            )

        log_action(
            db,
            user_id=user_id,
            action="SALE_CANCELLED",
            resource_type="sales",
            resource_id=sale.invoice_number,
            ip_address=ip_address,
            changes={
                "invoice_number": sale.invoice_number,
                "total": str(sale.total),
                "skipped_items": skipped,
            },
        )

    db.refresh(sale)
    return sale, skipped


# ─── Read side ───────────────────────────────────────────────────────────────


def get_sale(db: Session, sale_id: UUID) -> Sale:
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    db: Session,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    cashier_id: UUID | None = None,
    payment_method: PaymentMethod | None = None,
    status: SaleStatus | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Sale]:
    query = db.query(Sale)
    if search:
        query = query.filter(Sale.invoice_number.ilike(f"%{search.strip()}%"))
    if start_date:
        query = query.filter(Sale.created_at >= business_day_range(start_date)[0])
    if end_date:
        query = query.filter(Sale.created_at < business_day_range(end_date)[1])
    if cashier_id:
        query = query.filter(Sale.created_by == cashier_id)
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc()).offset(offset).limit(limit).all()


def cashier_day_summary(
    db: Session, cashier_id: UUID, now: datetime | None = None
) -> dict[str, Any]:
    """Completed sales the cashier rang up today, split by payment method."""
    now = now or utcnow()
    today = business_date(now)
    start, end = business_day_range(today)
    sales = (
        db.query(Sale)
        .filter(
            Sale.created_by == cashier_id,
            Sale.status == SaleStatus.COMPLETED,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .order_by(Sale.created_at.desc())
        .all()
    )

    by_method: dict[str, dict[str, Any]] = {
        m.value: {"count": 0, "total": ZERO} for m in PaymentMethod
    }
    for sale in sales:
        bucket = by_method[sale.payment_method.value]
        bucket["count"] += 1
        bucket["total"] += Decimal(str(sale.total))

    return {
        "business_date": today,
        "sales_count": len(sales),
        "total_amount": sum((b["total"] for b in by_method.values()), ZERO),
        "by_payment_method": by_method,
        "sales": sales,
    }
