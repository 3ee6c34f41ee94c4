"""Business-day helpers. Timestamps are stored in UTC; day boundaries follow
``settings.TIMEZONE``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from autoparts.app.core.config import settings


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def business_date(moment: datetime | None = None) -> date:
    moment = moment or utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(business_tz()).date()


def start_of_business_day(moment: datetime | None = None) -> datetime:
    """UTC instant at which the business day containing *moment* began."""
    day = business_date(moment)
    return datetime.combine(day, time.min, tzinfo=business_tz()).astimezone(timezone.utc)


def business_day_range(day: date) -> tuple[datetime, datetime]:
    """UTC ``[start, end)`` of business date *day*."""
    start = datetime.combine(day, time.min, tzinfo=business_tz())
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
