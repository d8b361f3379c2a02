"""
Time-bucket keys for visit counters.

Every counter family (daily, weekly, monthly, yearly) is keyed by a string
derived from the UTC time of the visit. These strings are part of the
persisted key schema, so their format must never change.

Week numbers use a simple arithmetic rule rather than ISO-8601:

    week = ceil((days_since_jan1 + weekday_of_jan1 + 1) / 7)

where weekday_of_jan1 counts from Sunday = 0. Weeks at year boundaries
therefore differ from ISO weeks (2025-12-31 is week 53, not week 1 of 2026).
"""

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _utc(d: datetime | None) -> datetime:
    if d is None:
        return utc_now()
    if d.tzinfo is None:
        # Naive datetimes are treated as UTC
        return d.replace(tzinfo=timezone.utc)
    return d.astimezone(timezone.utc)


def day_key(d: datetime | None = None) -> str:
    """UTC date as YYYY-MM-DD."""
    return _utc(d).strftime("%Y-%m-%d")


def month_key(d: datetime | None = None) -> str:
    """UTC month as YYYY-MM."""
    return _utc(d).strftime("%Y-%m")


def year_key(d: datetime | None = None) -> str:
    """UTC year as YYYY."""
    return f"{_utc(d).year:04d}"


def week_key(d: datetime | None = None) -> str:
    """Week bucket as YYYY-W## (see module docstring for the rule)."""
    d = _utc(d)
    jan1 = datetime(d.year, 1, 1, tzinfo=timezone.utc)
    days = (d - jan1) // timedelta(days=1)
    # Python: Monday=0 .. Sunday=6; the week rule wants Sunday=0 .. Saturday=6
    jan1_weekday = (jan1.weekday() + 1) % 7
    week = -(-(days + jan1_weekday + 1) // 7)
    return f"{d.year:04d}-W{week:02d}"


def iso_timestamp(d: datetime | None = None) -> str:
    """Millisecond-precision ISO timestamp with a Z suffix."""
    d = _utc(d)
    return d.strftime("%Y-%m-%dT%H:%M:%S") + f".{d.microsecond // 1000:03d}Z"


def epoch_millis(d: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch."""
    return (_utc(d) - EPOCH) // timedelta(milliseconds=1)
