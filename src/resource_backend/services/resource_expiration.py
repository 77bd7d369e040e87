"""
Expiration of resource instances.

Instances may carry an ``$expires`` timestamp, either supplied by the client
or derived from the definition's ``expires`` duration on create. Read paths
treat an instance whose expiration is at or before the request's ``now`` as
absent. Expired rows are never deleted here.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|s|m|h|d|w)")
_DURATION_RE = re.compile(r"^\s*(?:\d+(?:\.\d+)?\s*(?:ms|s|m|h|d|w)\s*)+$")


def parse_duration(text: str) -> timedelta:
    """Parse durations such as ``10m`` or ``1d 8h 30m``."""
    if not isinstance(text, str) or not _DURATION_RE.match(text):
        raise ValueError(f"Invalid duration '{text}'")

    total = timedelta()
    for amount, unit in _DURATION_PART_RE.findall(text):
        total += float(amount) * _DURATION_UNITS[unit]
    return total


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps read back from SQLite are naive, they are stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None when it is not one."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def expiration_on_create(duration: Optional[timedelta], supplied: Optional[datetime], now: datetime) -> Optional[datetime]:
    if supplied is not None:
        return as_utc(supplied)
    if duration is not None:
        return now + duration
    return None


def expiration_on_update(existing: Optional[datetime], supplied: Optional[datetime]) -> Optional[datetime]:
    if supplied is not None:
        return as_utc(supplied)
    return as_utc(existing)


def has_passed(expires: Optional[datetime], now: datetime) -> bool:
    return expires is not None and as_utc(expires) <= now
