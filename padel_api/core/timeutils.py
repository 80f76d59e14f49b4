"""
Instant handling for the booking and scheduling rules.

Timestamps reach us as ISO-8601 strings that may or may not carry a zone
designator, and sqlite hands back naive datetimes. Everything goes through
``ensure_utc`` once at the boundary; the rules only ever see aware UTC values.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Union

_MS_PER_HOUR = 60 * 60 * 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Union[str, datetime]) -> datetime:
    """Return ``value`` as an aware UTC datetime. Zone-less input is UTC."""
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        value = datetime.fromisoformat(raw)
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime or ISO string, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_ms(value: datetime) -> int:
    return round(ensure_utc(value).timestamp() * 1000)


def hours_until(target: datetime, now: datetime) -> float:
    """Hours from ``now`` to ``target``; negative once ``target`` has passed."""
    return (epoch_ms(target) - epoch_ms(now)) / _MS_PER_HOUR


def isoformat_z(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
