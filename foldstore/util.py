"""
Small helpers: timestamps and slugs.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timedelta, timezone

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_DURATION = re.compile(r"^\s*(\d+)\s*([smhd])\s*$", re.IGNORECASE)
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def slugify(value: object) -> str:
    """Lowercase ASCII slug with single dashes; ``"unknown"`` when empty."""
    text = unicodedata.normalize("NFKD", str(value))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = _NON_ALNUM.sub("-", text).strip("-")
    return text or "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are taken as UTC. Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def try_parse_timestamp(value: object) -> datetime | None:
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def to_rfc3339(dt: datetime, *, millis: bool = True) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SS[.mmm]Z`` in UTC."""
    dt = dt.astimezone(timezone.utc)
    if millis:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def now_rfc3339() -> str:
    return to_rfc3339(utcnow())


def parse_since(value: str, *, now: datetime | None = None) -> datetime:
    """
    Resolve a ``since`` argument.

    Accepts an RFC 3339 timestamp or a relative duration such as ``30m``,
    ``1h``, ``7d`` or ``10s`` (measured back from `now`).
    """
    match = _DURATION.match(value)
    if match:
        amount = int(match.group(1))
        unit = _DURATION_UNITS[match.group(2).lower()]
        return (now or utcnow()) - timedelta(**{unit: amount})
    return parse_timestamp(value)
