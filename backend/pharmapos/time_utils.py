# Overview: UTC clock and ISO-8601 conversions shared by models, services and routes.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

# Stored datetimes are naive and always mean UTC.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2026-03-01", "2026-03-01T09:30", "2026-03-01T09:30:00Z" and
    "2026-03-01T11:30:00+02:00" all parse; offsets are folded into UTC and
    values without one are taken as UTC already. Blank input gives None;
    anything unparseable raises ValueError.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def parse_iso_date(value) -> Optional[date]:
    """Calendar date from a date, a datetime (its UTC date) or an ISO string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc_naive(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    parsed = parse_iso_datetime(text)
    return parsed.date() if parsed else None


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z, e.g. "2026-03-01T09:30:00Z"."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None
