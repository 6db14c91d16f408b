"""
Usage metering and limit enforcement.

Computes a user's usage record against plan limits and blocks analyses
once either the daily or the monthly limit is reached.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from .plans import DEFAULT_PLAN_TABLE, PlanTable, SubscriptionTier


@dataclass(frozen=True)
class UsageRecord:
    """Per-user analysis counters against plan limits."""
    daily_count: int
    daily_limit: int
    monthly_count: int
    monthly_limit: int
    daily_remaining: int
    monthly_remaining: int
    can_analyze: bool
    subscription_tier: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class UsageLimitExceeded(Exception):
    """Raised when an analysis is requested with no remaining allowance."""
    def __init__(self, usage: UsageRecord):
        super().__init__(
            f"You've reached your analysis limit. "
            f"Daily: {usage.daily_count}/{usage.daily_limit}, "
            f"Monthly: {usage.monthly_count}/{usage.monthly_limit}"
        )
        self.usage = usage


def compute_usage(
    tier: SubscriptionTier,
    daily_count: int,
    monthly_count: int,
    plans: Optional[PlanTable] = None,
) -> UsageRecord:
    """Build a usage record from raw counts.

    Args:
        tier: Subscription tier of the user
        daily_count: Analyses recorded today (UTC)
        monthly_count: Analyses recorded this month (UTC)
        plans: Plan table to read limits from (defaults to the built-in table)

    Returns:
        UsageRecord; can_analyze requires both limits to have room left
    """
    limits = (plans or DEFAULT_PLAN_TABLE).get_limits(tier)
    return UsageRecord(
        daily_count=daily_count,
        daily_limit=limits.daily,
        monthly_count=monthly_count,
        monthly_limit=limits.monthly,
        daily_remaining=max(0, limits.daily - daily_count),
        monthly_remaining=max(0, limits.monthly - monthly_count),
        can_analyze=daily_count < limits.daily and monthly_count < limits.monthly,
        subscription_tier=tier.value,
    )


def ensure_can_analyze(usage: UsageRecord) -> None:
    """Raise UsageLimitExceeded if the record allows no further analysis."""
    if not usage.can_analyze:
        raise UsageLimitExceeded(usage)


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def daily_window(now: datetime) -> Tuple[datetime, datetime]:
    """Half-open UTC window covering the day of ``now``."""
    now = _as_utc(now)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def monthly_window(now: datetime) -> Tuple[datetime, datetime]:
    """Half-open UTC window covering the calendar month of ``now``."""
    now = _as_utc(now)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end
