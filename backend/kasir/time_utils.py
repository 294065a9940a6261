"""
Time handling for the whole backend.

Every datetime stored or compared in the service layer is UTC without tzinfo.
Conversion happens only at the edges: parsing request/CLI input and
serializing responses.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current instant as a UTC-naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse client-supplied ISO-8601 into a UTC-naive datetime.

    Blank input gives None. A bare date means midnight of that day. Offsets
    (including a trailing "Z") are converted to UTC; naive values are taken
    as UTC already. Raises ValueError on anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()

    if len(text) == 10:
        return datetime.combine(date.fromisoformat(text), datetime.min.time())

    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as "YYYY-MM-DDTHH:MM:SS.mmmZ"; None passes through."""
    if dt is None:
        return None
    dt = as_utc_naive(dt)
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}Z"
