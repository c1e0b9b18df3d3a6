from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

# Midtrans expects Western Indonesia Time for Snap expiry windows
WIB_OFFSET = timedelta(hours=7)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is interpreted as midnight UTC
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


def parse_gateway_time(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Midtrans "YYYY-MM-DD HH:MM:SS" timestamp (WIB) into UTC-naive.

    Returns None for empty or unparseable input; gateway timestamps are
    informational and never block a status update.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        local = datetime.strptime(value.strip(), "%Y-%m-%d %H:%M:%S")
    except ValueError:
        try:
            return parse_iso_datetime(value)
        except ValueError:
            return None
    return local - WIB_OFFSET


def format_wib(dt: datetime) -> str:
    """Format a UTC-naive datetime as 'YYYY-MM-DD HH:MM:SS +0700'."""
    return (dt + WIB_OFFSET).strftime("%Y-%m-%d %H:%M:%S") + " +0700"


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


def to_iso_date(d: Optional[date]) -> Optional[str]:
    if d is None:
        return None
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()


def base36(n: int) -> str:
    """Lowercase base-36 rendering of a non-negative integer."""
    if n < 0:
        raise ValueError("base36 requires a non-negative integer")
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def epoch_millis(dt: Optional[datetime] = None) -> int:
    dt = dt or utcnow()
    return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)
