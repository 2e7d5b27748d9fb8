"""Rolling time-window rules.

All predicates take ``now`` explicitly. ``utcnow`` is the only place the
service reads the wall clock; the HTTP layer calls it once per request.
Timestamps are naive UTC, matching what the database stores.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

VISIBILITY_WINDOW = timedelta(minutes=90)
CHECKIN_WINDOW = VISIBILITY_WINDOW
COOLDOWN_WINDOW = timedelta(minutes=10)
RATE_LIMIT_WINDOW = timedelta(hours=1)
RATE_LIMIT_MAX_SIGHTINGS = 3

DEFAULT_RANGE = "24h"
RANGE_LOOKBACK = {
    "24h": timedelta(hours=24),
    "2d": timedelta(days=2),
    "3d": timedelta(days=3),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_visible(created_at: datetime, now: datetime) -> bool:
    return now - created_at <= VISIBILITY_WINDOW


def is_checkin_open(created_at: datetime, now: datetime) -> bool:
    # Check-ins close exactly when visibility ends
    return now - created_at <= CHECKIN_WINDOW


def cooldown_cutoff(now: datetime) -> datetime:
    return now - COOLDOWN_WINDOW


def in_cooldown(previous_checkins: Iterable[datetime], now: datetime) -> bool:
    """True if any of one device's prior check-ins on a sighting is still cooling down."""
    cutoff = cooldown_cutoff(now)
    return any(ts >= cutoff for ts in previous_checkins)


def cooldown_retry_after(latest_checkin: datetime, now: datetime) -> int:
    return _seconds_until(latest_checkin + COOLDOWN_WINDOW, now)


def rate_limit_cutoff(now: datetime) -> datetime:
    return now - RATE_LIMIT_WINDOW


def rate_limit_retry_after(oldest_counted: datetime, now: datetime) -> int:
    return _seconds_until(oldest_counted + RATE_LIMIT_WINDOW, now)


def visibility_cutoff(now: datetime) -> datetime:
    return now - VISIBILITY_WINDOW


def range_lookback(range_token: Optional[str], recently: bool = False) -> timedelta:
    """Map a named range token to its lookback.

    ``recently`` always means the visibility window, whatever the token says.
    A missing or unknown token falls back to 24h.
    """
    if recently:
        return VISIBILITY_WINDOW
    return RANGE_LOOKBACK.get(range_token or DEFAULT_RANGE, RANGE_LOOKBACK[DEFAULT_RANGE])


def within_range(
    range_token: Optional[str], created_at: datetime, now: datetime, recently: bool = False
) -> bool:
    return created_at >= now - range_lookback(range_token, recently)


def _seconds_until(moment: datetime, now: datetime) -> int:
    # Rounded up so a client never retries a second early
    return max(1, math.ceil((moment - now).total_seconds()))
