from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_str() -> str:
    """Business date for 'today' as YYYY-MM-DD."""
    return utcnow().date().isoformat()


def current_month() -> str:
    return utcnow().strftime("%Y-%m")


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
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


def parse_business_date(value) -> str:
    """
    Normalize a business date to 'YYYY-MM-DD'.

    Accepts date/datetime objects, plain dates and full ISO timestamps
    (the date part is kept). Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        raise ValueError("invalid date")
    s = value.strip()
    return date.fromisoformat(s[:10]).isoformat()


def parse_month(value: Optional[str]) -> str:
    """Validate a 'YYYY-MM' month key. None -> current month."""
    if value is None or not str(value).strip():
        return current_month()
    s = str(value).strip()
    try:
        datetime.strptime(s, "%Y-%m")
    except ValueError:
        raise ValueError("month must be YYYY-MM")
    if len(s) != 7:
        raise ValueError("month must be YYYY-MM")
    return s


def month_of(business_date: str) -> str:
    return business_date[:7]


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
