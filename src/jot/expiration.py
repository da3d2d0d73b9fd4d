"""Expiration policy: turn a time-to-live in days into an absolute expiry."""

from __future__ import annotations

from datetime import datetime, timedelta

from jot.errors import ValidationError
from jot.types import utcnow

DEFAULT_TTL_DAYS = 14


def calculate_expiration(
    ttl_days: float | None = None,
    now: datetime | None = None,
    default_days: float = DEFAULT_TTL_DAYS,
) -> datetime | None:
    """Compute ``expires_at`` for a jot.

    - ``None``: ``now + default_days``
    - ``0``: permanent, returns ``None``
    - positive: ``now + ttl_days``
    - negative: a timestamp already in the past (used to synthesize expired
      entries; not rejected)
    """
    if isinstance(ttl_days, bool) or not isinstance(ttl_days, (int, float, type(None))):
        raise ValidationError(f"ttl_days must be a number, got {ttl_days!r}")

    now = now or utcnow()
    if ttl_days is None:
        return now + timedelta(days=default_days)
    if ttl_days == 0:
        return None
    return now + timedelta(days=ttl_days)


def expiring_window(days: float, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return the ``(now, now + days)`` horizon for expiring-soon queries."""
    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        raise ValidationError(f"days must be a non-negative number, got {days!r}")
    now = now or utcnow()
    return now, now + timedelta(days=days)
