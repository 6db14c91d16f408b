"""
Unit tests for subscription plans and usage metering.
"""

from datetime import datetime, timedelta, timezone

import pytest

from forex_radar.core.plans import (
    DEFAULT_PLAN_TABLE,
    AnalysisMode,
    ModeNotAvailable,
    PlanLimits,
    PlanTable,
    SubscriptionTier,
    analysis_modes,
    is_mode_enabled,
    require_mode,
)
from forex_radar.core.usage import (
    UsageLimitExceeded,
    compute_usage,
    daily_window,
    ensure_can_analyze,
    monthly_window,
)


class TestPlanTable:
    """Test plan limits per tier."""

    def test_default_limits(self):
        expected = {
            SubscriptionTier.FREE: (3, 90),
            SubscriptionTier.STARTER: (15, 450),
            SubscriptionTier.PRO: (30, 900),
        }
        for tier, (daily, monthly) in expected.items():
            limits = DEFAULT_PLAN_TABLE.get_limits(tier)
            assert (limits.daily, limits.monthly) == (daily, monthly)

    def test_limits_must_be_positive(self):
        with pytest.raises(ValueError, match="daily"):
            PlanLimits(daily=0, monthly=10)
        with pytest.raises(ValueError, match="monthly"):
            PlanLimits(daily=1, monthly=-1)

    def test_missing_tier(self):
        table = PlanTable({SubscriptionTier.FREE: PlanLimits(daily=1, monthly=1)})

        with pytest.raises(ValueError, match="No limits configured for tier: pro"):
            table.get_limits(SubscriptionTier.PRO)

    def test_parse_tier(self):
        assert SubscriptionTier.parse("pro") == SubscriptionTier.PRO
        assert SubscriptionTier.parse(" Starter ") == SubscriptionTier.STARTER
        assert SubscriptionTier.parse("enterprise") == SubscriptionTier.FREE
        assert SubscriptionTier.parse(None) == SubscriptionTier.FREE
        assert SubscriptionTier.parse("") == SubscriptionTier.FREE


class TestModeGating:
    """Test analysis-mode availability by tier."""

    def test_single_chart_open_to_all(self):
        for tier in SubscriptionTier:
            assert is_mode_enabled(tier, AnalysisMode.SINGLE)

    def test_multi_timeframe_closed_to_free(self):
        assert not is_mode_enabled(SubscriptionTier.FREE, AnalysisMode.MULTI)
        assert is_mode_enabled(SubscriptionTier.STARTER, AnalysisMode.MULTI)
        assert is_mode_enabled(SubscriptionTier.PRO, AnalysisMode.MULTI)

    def test_require_mode_raises(self):
        with pytest.raises(ModeNotAvailable, match="Multi-Timeframe Analysis is not available on the free plan") as exc_info:
            require_mode(SubscriptionTier.FREE, AnalysisMode.MULTI)

        assert exc_info.value.tier == SubscriptionTier.FREE
        assert exc_info.value.mode == AnalysisMode.MULTI

        require_mode(SubscriptionTier.PRO, AnalysisMode.MULTI)

    def test_analysis_modes_listing(self):
        modes = analysis_modes(SubscriptionTier.FREE)

        assert [mode["value"] for mode in modes] == ["single", "multi"]
        assert [mode["enabled"] for mode in modes] == [True, False]
        assert modes[1]["plans"] == "Starter & Pro Only"
        assert "3 timeframes" in modes[1]["description"]

        assert all(mode["enabled"] for mode in analysis_modes(SubscriptionTier.STARTER))


class TestComputeUsage:
    """Test usage records against limits."""

    def test_room_left(self):
        usage = compute_usage(SubscriptionTier.FREE, daily_count=2, monthly_count=40)

        assert usage.daily_remaining == 1
        assert usage.monthly_remaining == 50
        assert usage.can_analyze is True
        assert usage.subscription_tier == "free"

    def test_daily_limit_reached(self):
        usage = compute_usage(SubscriptionTier.FREE, daily_count=3, monthly_count=3)

        assert usage.daily_remaining == 0
        assert usage.can_analyze is False

    def test_monthly_limit_reached(self):
        """The monthly limit blocks even with daily room left."""
        usage = compute_usage(SubscriptionTier.STARTER, daily_count=0, monthly_count=450)

        assert usage.daily_remaining == 15
        assert usage.monthly_remaining == 0
        assert usage.can_analyze is False

    def test_remaining_never_negative(self):
        usage = compute_usage(SubscriptionTier.FREE, daily_count=7, monthly_count=120)

        assert usage.daily_remaining == 0
        assert usage.monthly_remaining == 0

    def test_custom_plan_table(self):
        plans = PlanTable({SubscriptionTier.PRO: PlanLimits(daily=100, monthly=1000)})

        usage = compute_usage(SubscriptionTier.PRO, 0, 0, plans=plans)

        assert usage.daily_limit == 100

    def test_to_dict(self):
        usage = compute_usage(SubscriptionTier.PRO, 1, 2)

        assert usage.to_dict() == {
            "daily_count": 1,
            "daily_limit": 30,
            "monthly_count": 2,
            "monthly_limit": 900,
            "daily_remaining": 29,
            "monthly_remaining": 898,
            "can_analyze": True,
            "subscription_tier": "pro",
        }

    def test_ensure_can_analyze(self):
        ensure_can_analyze(compute_usage(SubscriptionTier.FREE, 0, 0))

        blocked = compute_usage(SubscriptionTier.FREE, 3, 10)
        with pytest.raises(UsageLimitExceeded) as exc_info:
            ensure_can_analyze(blocked)

        assert str(exc_info.value) == "You've reached your analysis limit. Daily: 3/3, Monthly: 10/90"
        assert exc_info.value.usage is blocked


class TestUsageWindows:
    """Test UTC day and month windows."""

    def test_daily_window(self):
        start, end = daily_window(datetime(2024, 1, 1, 23, 59, 59, tzinfo=timezone.utc))

        assert start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_daily_window_converts_to_utc(self):
        tokyo = timezone(timedelta(hours=9))
        # 08:00 in Tokyo on the 2nd is still the 1st in UTC
        start, _ = daily_window(datetime(2024, 1, 2, 8, 0, tzinfo=tokyo))

        assert start == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_naive_time_taken_as_utc(self):
        start, _ = daily_window(datetime(2024, 1, 1, 12, 0))

        assert start == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_monthly_window(self):
        start, end = monthly_window(datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc))

        assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_monthly_window_year_rollover(self):
        start, end = monthly_window(datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc))

        assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)
