"""Celery application instance.

Start the worker::

    celery -A autoparts.app.workers.celery_app worker --loglevel=info
    celery -A autoparts.app.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from autoparts.app.core.config import settings

celery = Celery(
    "autoparts",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Schedules below are in the store's business timezone
celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.TIMEZONE,
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery.autodiscover_tasks(["autoparts.app.workers.tasks"])

celery.conf.beat_schedule = {
    "expire-quotations": {
        "task": "autoparts.app.workers.tasks.quotations.expire_quotations",
        "schedule": crontab(hour=0, minute=5),
    },
    "report-low-stock": {
        "task": "autoparts.app.workers.tasks.stock.report_low_stock",
        "schedule": crontab(hour=7, minute=30),
    },
}
