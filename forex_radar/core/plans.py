"""
Subscription plans and analysis-mode gating.

Maps subscription tiers to analysis limits and decides which analysis
modes a tier may use.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class SubscriptionTier(Enum):
    """Subscription tiers in ascending order."""
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SubscriptionTier":
        """Parse a stored tier name; missing or unknown tiers are free."""
        if not value:
            return cls.FREE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.FREE


class AnalysisMode(Enum):
    """Ways a chart can be analyzed."""
    SINGLE = "single"
    MULTI = "multi"


class ModeNotAvailable(Exception):
    """Raised when a tier requests an analysis mode it does not include."""
    def __init__(self, tier: SubscriptionTier, mode: AnalysisMode):
        label = _MODE_DESCRIPTIONS[mode][0]
        super().__init__(f"{label} is not available on the {tier.value} plan")
        self.tier = tier
        self.mode = mode


@dataclass(frozen=True)
class PlanLimits:
    """Analysis limits for a subscription tier."""
    daily: int
    monthly: int

    def __post_init__(self):
        if self.daily <= 0:
            raise ValueError("daily limit must be > 0")
        if self.monthly <= 0:
            raise ValueError("monthly limit must be > 0")


@dataclass(frozen=True)
class PlanTable:
    """Limits for every subscription tier."""
    limits: Dict[SubscriptionTier, PlanLimits]

    def get_limits(self, tier: SubscriptionTier) -> PlanLimits:
        """Get limits for a tier.

        Args:
            tier: Subscription tier

        Returns:
            PlanLimits for the tier

        Raises:
            ValueError: If the table has no entry for the tier
        """
        if tier not in self.limits:
            raise ValueError(f"No limits configured for tier: {tier.value}")
        return self.limits[tier]


DEFAULT_PLAN_TABLE = PlanTable({
    SubscriptionTier.FREE: PlanLimits(daily=3, monthly=90),
    SubscriptionTier.STARTER: PlanLimits(daily=15, monthly=450),
    SubscriptionTier.PRO: PlanLimits(daily=30, monthly=900),
})

MAX_MULTI_TIMEFRAME_CHARTS = 3

_MODE_DESCRIPTIONS = {
    AnalysisMode.SINGLE: ("Single Chart Analysis", "Analyze one chart image", "All Plans"),
    AnalysisMode.MULTI: (
        "Multi-Timeframe Analysis",
        f"Analyze up to {MAX_MULTI_TIMEFRAME_CHARTS} timeframes",
        "Starter & Pro Only",
    ),
}


def is_mode_enabled(tier: SubscriptionTier, mode: AnalysisMode) -> bool:
    """Whether a tier may use an analysis mode.

    Single-chart analysis is open to every plan; multi-timeframe analysis is
    closed to the free plan.
    """
    if mode == AnalysisMode.MULTI:
        return tier != SubscriptionTier.FREE
    return True


def require_mode(tier: SubscriptionTier, mode: AnalysisMode) -> None:
    """Raise ModeNotAvailable if the tier may not use the mode."""
    if not is_mode_enabled(tier, mode):
        raise ModeNotAvailable(tier, mode)


def analysis_modes(tier: SubscriptionTier) -> List[Dict[str, object]]:
    """Describe the analysis-mode options for a tier, in display order."""
    options = []
    for mode in AnalysisMode:
        label, description, plans = _MODE_DESCRIPTIONS[mode]
        options.append({
            "value": mode.value,
            "label": label,
            "description": description,
            "plans": plans,
            "enabled": is_mode_enabled(tier, mode),
        })
    return options
