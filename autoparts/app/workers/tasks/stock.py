"""Opening-time stock report."""

from __future__ import annotations

import logging

from autoparts.app.workers.celery_app import celery

logger = logging.getLogger(__name__)


@celery.task(name="autoparts.app.workers.tasks.stock.report_low_stock")
def report_low_stock() -> dict:
    from autoparts.app.core.database import SessionLocal
    from autoparts.app.services.products import low_stock_products

    db = SessionLocal()
    try:
        skus = [p.sku for p in low_stock_products(db)]
    finally:
        db.close()

    if skus:
        logger.warning("%d product(s) at or below reorder level: %s", len(skus), ", ".join(skus))
    return {"low_stock": skus}
