"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone

DAYS_PER_MONTH = 30


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def add_loan_months(start: datetime, months: int) -> datetime:
    """Add loan months using the fixed 30-day month (not calendar-accurate)"""
    return start + timedelta(days=months * DAYS_PER_MONTH)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
