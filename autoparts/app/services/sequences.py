"""Human-readable document numbers.

Formats::

    INVOICE          INVyyMMdd####     daily
    RETURN           DEV-######        global
    PURCHASE_ORDER   PO-######         global
    QUOTATION        COT-######        global
    WITHDRAWAL       RET-yyyyMMdd-###  daily

Each scope (the prefix) owns a row in ``document_sequences`` that is bumped
with a single INSERT .. ON CONFLICT DO UPDATE .. RETURNING, so two
concurrent requests never read the same value.  Every number column is also
UNIQUE; ``insert_numbered`` retries with a fresh number when an insert still
collides (legacy rows, degraded-mode numbers).
"""

from __future__ import annotations

import enum
import logging
import time
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from autoparts.app.core.config import settings
from autoparts.app.core.exceptions import ConcurrencyConflictError
from autoparts.app.core.timeutils import business_date, utcnow
from autoparts.app.models.sequence import DocumentSequence

logger = logging.getLogger(__name__)


class SequenceKind(str, enum.Enum):
    INVOICE = "INVOICE"
    RETURN = "RETURN"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    QUOTATION = "QUOTATION"
    WITHDRAWAL = "WITHDRAWAL"


_GLOBAL_PREFIXES: dict[SequenceKind, str] = {
    SequenceKind.RETURN: "DEV-",
    SequenceKind.PURCHASE_ORDER: "PO-",
    SequenceKind.QUOTATION: "COT-",
}


def prefix_for(kind: SequenceKind, day: date) -> tuple[str, int]:
    """Return ``(prefix, digits)`` for *kind* on business date *day*."""
    if kind is SequenceKind.INVOICE:
        return f"INV{day:%y%m%d}", 4
    if kind is SequenceKind.WITHDRAWAL:
        return f"RET-{day:%Y%m%d}-", 3
    return _GLOBAL_PREFIXES[kind], 6


def _increment(db: Session, scope: str) -> int:
    table = DocumentSequence.__table__
    dialect = db.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(table)
            .values(scope=scope, value=1)
            .on_conflict_do_update(
                index_elements=[table.c.scope],
                set_={"value": table.c.value + 1},
            )
            .returning(table.c.value)
        )
        return db.execute(stmt).scalar_one()

    # Other backends: row lock on the counter
    row = db.execute(
        select(DocumentSequence)
        .where(DocumentSequence.scope == scope)
        .with_for_update()
    ).scalar_one_or_none()
    if row is None:
        row = DocumentSequence(scope=scope, value=0)
        db.add(row)
    row.value += 1
    db.flush()
    return row.value


def _timestamp_suffix(digits: int) -> str:
    return str(int(time.time() * 1000))[-digits:].zfill(digits)


def next_number(db: Session, kind: SequenceKind, now: datetime | None = None) -> str:
    """Allocate the next number for *kind*.

    If the counter cannot be read or bumped the number falls back to a
    timestamp-derived suffix (degraded mode). That is logged as a warning;
    the UNIQUE constraint still guards the insert.
    """
    prefix, digits = prefix_for(kind, business_date(now or utcnow()))
    try:
        with db.begin_nested():
            value = _increment(db, prefix)
    except SQLAlchemyError:
        fallback = f"{prefix}{_timestamp_suffix(digits)}"
        logger.warning(
            "Sequence counter %s unavailable, degraded to timestamp number %s",
            prefix,
            fallback,
            exc_info=True,
        )
        return fallback
    return f"{prefix}{value:0{digits}d}"


def insert_numbered(
    db: Session,
    kind: SequenceKind,
    obj: object,
    field: str,
    *,
    now: datetime | None = None,
    max_attempts: int | None = None,
) -> str:
    """Assign a fresh number to ``obj.<field>`` and flush *obj*.

    *obj* must not already be in the session (it would be autoflushed without
    a number). A uniqueness violation on that number is retried with a new
    one; any other integrity error propagates unchanged.
    """
    attempts = max_attempts or settings.SEQUENCE_MAX_ATTEMPTS
    model = type(obj)
    column = getattr(model, field)

    for attempt in range(1, attempts + 1):
        number = next_number(db, kind, now)
        setattr(obj, field, number)
        try:
            with db.begin_nested():
                db.add(obj)
                db.flush()
        except IntegrityError:
            taken = db.execute(
                select(column).where(column == number)
            ).first() is not None
            if not taken:
                raise
            logger.warning(
                "%s number %s already in use (attempt %d/%d)",
                kind.value,
                number,
                attempt,
                attempts,
            )
            continue
        return number

    raise ConcurrencyConflictError(
        f"Could not allocate a unique {kind.value.lower().replace('_', ' ')} "
        f"number after {attempts} attempts, please retry"
    )
