"""
Server time and daily reset countdown.

Usage counters reset at midnight UTC; clients use this to show how long
remains until the next reset.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


def format_utc(moment: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision, e.g. ``2024-01-02T00:00:00.000Z``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def next_reset(now: datetime) -> datetime:
    """Midnight UTC following ``now``."""
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def compute_server_time(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Describe the current UTC time and the time left until the next reset.

    Args:
        now: Moment to describe (defaults to the current time); naive values
            are taken as UTC

    Returns:
        Dictionary with current_utc_time, next_reset_utc, time_until_reset_ms,
        time_until_reset (hours/minutes/seconds) and current_date_utc
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    reset = next_reset(now)
    remaining_ms = (reset - now) // timedelta(milliseconds=1)

    return {
        "current_utc_time": format_utc(now),
        "next_reset_utc": format_utc(reset),
        "time_until_reset_ms": remaining_ms,
        "time_until_reset": {
            "hours": remaining_ms // 3_600_000,
            "minutes": (remaining_ms % 3_600_000) // 60_000,
            "seconds": (remaining_ms % 60_000) // 1000,
        },
        "current_date_utc": now.date().isoformat(),
    }


def format_countdown(time_until_reset_ms: int) -> str:
    """Render a reset countdown as ``HH:MM:SS``."""
    total_seconds = max(0, time_until_reset_ms) // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
