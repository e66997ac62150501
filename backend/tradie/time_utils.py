from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# All timestamps are stored and compared as UTC-naive datetimes. Values
# coming back from DateTime(timezone=True) columns are aware on Postgres and
# naive on SQLite, so anything read from the store goes through as_utc_naive.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def has_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once now is past expires_at. A missing expiry never expires."""
    if expires_at is None:
        return False
    return (now or utcnow()) > as_utc_naive(expires_at)


def numbering_year(now: Optional[datetime] = None) -> int:
    """Year used to scope document numbers (UTC calendar year)."""
    return (now or utcnow()).year


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string from a request body -> UTC-naive datetime.

    Blank input is None. A value without an offset is taken as UTC;
    "Z" and "+10:00" style offsets are converted.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Datetime -> "2025-06-02T09:00:00Z" (seconds precision) for JSON responses."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = as_utc_naive(dt)
    return dt.replace(microsecond=0).isoformat() + "Z"
