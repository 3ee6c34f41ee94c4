from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from autoparts.app.core.config import settings
from autoparts.app.core.database import atomic
from autoparts.app.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from autoparts.app.core.timeutils import business_date, utcnow
from autoparts.app.models.customer import Customer
from autoparts.app.models.inventory import Product
from autoparts.app.models.pos import PaymentMethod, Sale
from autoparts.app.models.quotes import Quotation, QuotationItem, QuotationStatus
from autoparts.app.schemas.quotes import QuotationItemIn
from autoparts.app.services.audit import log_action
from autoparts.app.services.sales import commit_sale, load_sellable_products, price_line
from autoparts.app.services.sequences import SequenceKind, insert_numbered

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

CONVERTIBLE = (QuotationStatus.PENDING, QuotationStatus.APPROVED)


def create_quotation(
    db: Session,
    *,
    items: Sequence[QuotationItemIn],
    user_id: UUID,
    customer_id: UUID | None = None,
    generic_customer_name: str | None = None,
    valid_until: date | None = None,
    notes: str | None = None,
    terms: str | None = None,
    tax_rate: Decimal | None = None,
    validity_days: int | None = None,
    ip_address: str | None = None,
) -> Quotation:
    """Create a quotation. Prices are frozen here and reused on conversion."""
    if not items:
        raise ValidationError("Quotation must contain at least one item")
    rate = settings.TAX_RATE if tax_rate is None else Decimal(str(tax_rate))
    today = business_date()
    if valid_until is None:
        days = settings.QUOTATION_VALIDITY_DAYS if validity_days is None else validity_days
        valid_until = today + timedelta(days=days)
    elif valid_until < today:
        raise ValidationError("valid_until cannot be in the past")

    with atomic(db):
        if customer_id is not None and db.get(Customer, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        rows: list[QuotationItem] = []
        subtotal = ZERO
        for item in items:
            product = db.get(Product, item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            unit_price = Decimal(
                str(item.unit_price if item.unit_price is not None else product.selling_price)
            )
            line_subtotal, _ = price_line(unit_price, item.quantity, item.discount)
            subtotal += line_subtotal
            rows.append(QuotationItem(
                product_id=product.id,
                product_name=product.name,
                quantity=item.quantity,
                unit_price=unit_price,
                discount=item.discount,
                subtotal=line_subtotal,
            ))

        tax = (subtotal * rate / HUNDRED).quantize(Q, rounding=ROUND_HALF_UP)
        quotation = Quotation(
            customer_id=customer_id,
            generic_customer_name=generic_customer_name,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            status=QuotationStatus.PENDING,
            valid_until=valid_until,
            notes=notes,
            terms=terms,
            created_by=user_id,
            items=rows,
        )
        number = insert_numbered(db, SequenceKind.QUOTATION, quotation, "quotation_number")

        log_action(
            db,
            user_id=user_id,
            action="QUOTATION_CREATED",
            resource_type="quotations",
            resource_id=number,
            ip_address=ip_address,
            changes={
                "quotation_number": number,
                "total": str(subtotal + tax),
                "valid_until": valid_until.isoformat(),
            },
        )

    db.refresh(quotation)
    return quotation


def get_quotation(db: Session, quotation_id: UUID) -> Quotation:
    quotation = db.get(Quotation, quotation_id)
    if quotation is None:
        raise NotFoundError("Quotation not found")
    return quotation


def list_quotations(
    db: Session,
    *,
    status: QuotationStatus | None = None,
    customer_id: UUID | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Quotation]:
    query = db.query(Quotation)
    if status:
        query = query.filter(Quotation.status == status)
    if customer_id:
        query = query.filter(Quotation.customer_id == customer_id)
    return query.order_by(Quotation.created_at.desc()).offset(offset).limit(limit).all()


def update_quotation_status(
    db: Session,
    *,
    quotation_id: UUID,
    status: QuotationStatus,
    user_id: UUID,
    ip_address: str | None = None,
) -> Quotation:
    """PENDING → APPROVED | REJECTED. Conversion and expiry have their own paths."""
    if status not in (QuotationStatus.APPROVED, QuotationStatus.REJECTED):
        raise ValidationError("Status can only be set to APPROVED or REJECTED")

    with atomic(db):
        quotation = get_quotation(db, quotation_id)
        if quotation.status != QuotationStatus.PENDING:
            raise InvalidStateError(
                f"Quotation {quotation.quotation_number} is {quotation.status.value}; "
                "only PENDING quotations can be approved or rejected"
            )
        quotation.status = status
        quotation.processed_by = user_id
        log_action(
            db,
            user_id=user_id,
            action=f"QUOTATION_{status.value}",
            resource_type="quotations",
            resource_id=quotation.quotation_number,
            ip_address=ip_address,
        )

    db.refresh(quotation)
    return quotation


def _quotation_sale_lines(db: Session, quotation: Quotation) -> list[dict[str, Any]]:
    """Re-check current stock for every line and build sale lines at quoted prices."""
    demand: dict[UUID, int] = {}
    for item in quotation.items:
        if item.product_id is None:
            raise ValidationError(
                f"Product '{item.product_name}' on quotation "
                f"{quotation.quotation_number} no longer exists"
            )
        demand[item.product_id] = demand.get(item.product_id, 0) + item.quantity
    load_sellable_products(db, demand)

    lines: list[dict[str, Any]] = []
    for item in quotation.items:
        unit_price = Decimal(str(item.unit_price))
        discount = Decimal(str(item.discount))
        line_subtotal, line_discount = price_line(unit_price, item.quantity, discount)
        lines.append({
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "price_at_sale": unit_price,
            "discount_applied": discount,
            "subtotal": line_subtotal,
            "line_discount": line_discount,
        })
    return lines


def convert_to_sale(
    db: Session,
    *,
    quotation_id: UUID,
    payment_method: PaymentMethod,
    user_id: UUID,
    global_discount_pct: Decimal = ZERO,
    global_discount_amount: Decimal | None = None,
    notes: str | None = None,
    ip_address: str | None = None,
) -> Sale:
    """Turn a PENDING or APPROVED quotation into exactly one sale."""
    if payment_method is None:
        raise ValidationError("Payment method is required")
    now = utcnow()

    with atomic(db):
        quotation = get_quotation(db, quotation_id)
        if quotation.status == QuotationStatus.CONVERTED:
            raise InvalidStateError(
                f"Quotation {quotation.quotation_number} was already converted to a sale"
            )
        if quotation.status not in CONVERTIBLE:
            raise InvalidStateError(
                f"Quotation {quotation.quotation_number} is {quotation.status.value} "
                "and cannot be converted"
            )
        if quotation.valid_until < business_date(now):
            raise InvalidStateError(
                f"Quotation {quotation.quotation_number} expired on "
                f"{quotation.valid_until.isoformat()}"
            )

        lines = _quotation_sale_lines(db, quotation)

        # Claim the quotation first; a concurrent conversion blocks here and
        # then finds it CONVERTED
        claimed = db.execute(
            update(Quotation)
            .where(Quotation.id == quotation.id, Quotation.status.in_(CONVERTIBLE))
            .values(status=QuotationStatus.CONVERTED, processed_by=user_id, converted_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidStateError(
                f"Quotation {quotation.quotation_number} was already converted to a sale"
            )

        sale = commit_sale(
            db,
            lines=lines,
            payment_method=payment_method,
            user_id=user_id,
            customer_id=quotation.customer_id,
            global_discount_pct=global_discount_pct,
            global_discount_amount=global_discount_amount,
            notes=notes or f"From quotation {quotation.quotation_number}",
            ip_address=ip_address,
            now=now,
        )
        db.execute(
            update(Quotation)
            .where(Quotation.id == quotation.id)
            .values(converted_sale_id=sale.id)
            .execution_options(synchronize_session=False)
        )
        db.expire(quotation)

        log_action(
            db,
            user_id=user_id,
            action="QUOTATION_CONVERTED",
            resource_type="quotations",
            resource_id=quotation.quotation_number,
            ip_address=ip_address,
            changes={"invoice_number": sale.invoice_number, "total": str(sale.total)},
        )

    db.refresh(sale)
    logger.info("Quotation %s converted to sale %s", quotation.quotation_number, sale.invoice_number)
    return sale


def expire_quotations(db: Session, today: date | None = None) -> int:
    """Mark PENDING/APPROVED quotations past ``valid_until`` as EXPIRED."""
    today = today or business_date()
    with atomic(db):
        result = db.execute(
            update(Quotation)
            .where(Quotation.status.in_(CONVERTIBLE), Quotation.valid_until < today)
            .values(status=QuotationStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        expired = result.rowcount
    if expired:
        logger.info("Expired %d quotation(s) past their validity date", expired)
    return expired
