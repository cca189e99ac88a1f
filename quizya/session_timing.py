"""
Session auto-close timing for attendance and exam sessions.
Pure functions of wall-clock time; callers re-check on every rerun.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Union

Timestamp = Union[datetime, str, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Accept a datetime or a Supabase ISO string. Naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def auto_close_deadline(
    started_at: Timestamp,
    auto_close_duration_minutes: Optional[float],
) -> Optional[datetime]:
    """
    Deadline at which the session auto-closes, or None if auto-close is not configured.

    A duration of 0 is treated as "disabled", same as None. Non-numeric,
    non-finite or out-of-range durations are treated the same way.
    """
    duration = auto_close_duration_minutes
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return None
    if not math.isfinite(duration) or duration <= 0:
        return None
    start = _parse_timestamp(started_at)
    if start is None:
        return None
    try:
        return start + timedelta(minutes=duration)
    except (OverflowError, ValueError):
        return None


def has_auto_closed(
    started_at: Timestamp,
    auto_close_duration_minutes: Optional[float],
    now: Optional[datetime] = None,
) -> bool:
    """True once now >= started_at + duration. False when auto-close is not configured."""
    deadline = auto_close_deadline(started_at, auto_close_duration_minutes)
    if deadline is None:
        return False
    current = _parse_timestamp(now) if now is not None else _utcnow()
    return current >= deadline


def remaining_time(
    started_at: Timestamp,
    auto_close_duration_minutes: Optional[float],
    now: Optional[datetime] = None,
) -> Optional[timedelta]:
    """Time left before auto-close, clamped at zero. None when auto-close is not configured."""
    deadline = auto_close_deadline(started_at, auto_close_duration_minutes)
    if deadline is None:
        return None
    current = _parse_timestamp(now) if now is not None else _utcnow()
    return max(timedelta(0), deadline - current)


def auto_close_countdown(session: Dict, now: Optional[datetime] = None) -> Optional[str]:
    """Dashboard label for an attendance session row. None if inactive or no auto-close."""
    if not session.get("is_active"):
        return None
    deadline = auto_close_deadline(session.get("started_at"), session.get("auto_close_duration_minutes"))
    if deadline is None:
        return None
    left = remaining_time(session.get("started_at"), session.get("auto_close_duration_minutes"), now=now)
    minutes_remaining = math.ceil(left.total_seconds() / 60)
    if minutes_remaining <= 0:
        return "Auto-closing soon"
    return f"Auto-closes in {minutes_remaining}m ({deadline.strftime('%H:%M:%S')})"
