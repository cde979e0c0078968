"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone

from settlement_engine.config import settings


def business_today() -> date:
    """Current calendar date in the business time zone"""
    offset = timezone(timedelta(hours=settings.business_utc_offset_hours))
    return datetime.now(offset).date()


def add_days(from_date: date, days: int) -> date:
    """Add calendar days to a date"""
    return from_date + timedelta(days=days)
