"""Quotation housekeeping."""

from __future__ import annotations

from autoparts.app.workers.celery_app import celery


@celery.task(name="autoparts.app.workers.tasks.quotations.expire_quotations")
def expire_quotations() -> dict:
    """Mark open quotations past their validity date as EXPIRED."""
    from autoparts.app.core.database import SessionLocal
    from autoparts.app.services.quotations import expire_quotations as expire

    db = SessionLocal()
    try:
        return {"expired": expire(db)}
    finally:
        db.close()
