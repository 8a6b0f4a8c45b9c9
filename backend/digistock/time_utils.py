from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Optional

from flask import current_app, has_app_context


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now() -> datetime:
    """
    Ledger clock.

    Uses the CLOCK config value when the app provides one (tests pin it),
    otherwise utcnow().
    """
    clock = None
    if has_app_context():
        clock = current_app.config.get("CLOCK")
    return clock() if clock else utcnow()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def add_months(value: date | datetime, months: int) -> date | datetime:
    """
    Calendar-month addition.

    Rolls over year boundaries and clamps the day to the last day of the
    target month: 2025-01-31 + 1 month is 2025-02-28, 2024-01-31 + 1 month
    is 2024-02-29. The time of day of a datetime is preserved.
    """
    if isinstance(months, bool) or not isinstance(months, int):
        raise TypeError("months must be an int")

    month_index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    if year < 1:
        raise ValueError("resulting date is out of range")

    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
