from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC; every stored timestamp uses this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now() -> datetime:
    """Shop wall-clock time, used where staff read the value (order codes)."""
    return datetime.now()


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a query-string timestamp into naive UTC.

    Accepts "2026-03-14", "2026-03-14T09:30", "...Z" and "...+07:00".
    A bare date means the start of that day, or its last microsecond when
    end_of_day is set (so ?to=2026-03-14 covers the whole day).
    Raises ValueError on anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if end_of_day and "T" not in text and " " not in text:
        parsed += timedelta(days=1, microseconds=-1)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date_range(args) -> tuple[Optional[datetime], Optional[datetime]]:
    """`from` / `to` request args as an inclusive UTC range."""
    date_from = parse_iso_datetime(args.get("from"))
    date_to = parse_iso_datetime(args.get("to"), end_of_day=True)
    if date_from and date_to and date_from > date_to:
        raise ValueError("from must not be after to")
    return date_from, date_to


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing Z, seconds precision. Naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
