"""
Unit tests for storage layer.

Tests schema creation, ledger insertion, usage counting and subscriptions.
"""

import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone

import pytest

from forex_radar.core.plans import PlanLimits, PlanTable, SubscriptionTier
from forex_radar.core.usage import UsageLimitExceeded
from forex_radar.storage.db import get_connection
from forex_radar.storage.models import ChartAnalysisRecord, Subscriber
from forex_radar.storage.repository import (
    UsageRepository,
    count_analyses,
    fetch_recent_analyses,
    get_subscriber,
    initialize_schema,
    insert_chart_analysis,
    insert_chart_analysis_within_limits,
    upsert_subscriber,
)

NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def _record(user_id: str = "user-1", created_at: datetime = NOW, pair_name: str = "EUR/USD") -> ChartAnalysisRecord:
    return ChartAnalysisRecord(
        user_id=user_id,
        pair_name=pair_name,
        timeframe="1 Hour",
        created_at=created_at,
        analysis_data={"overall_sentiment": "bullish", "take_profits": ["1.0950"]},
    )


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify tables are created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name IN ('chart_analyses', 'subscribers')
                    ORDER BY name
                """)
                assert [row[0] for row in cursor.fetchall()] == ["chart_analyses", "subscribers"]

                cursor = conn.execute("PRAGMA table_info(chart_analyses)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'id', 'user_id', 'pair_name', 'timeframe', 'analysis_data', 'created_at'
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            insert_chart_analysis(_record(), db_path)
            initialize_schema(db_path)

            assert len(fetch_recent_analyses(db_path=db_path)) == 1

    def test_connection_creates_parent_directory(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "nested", "dir", "test.db")
            initialize_schema(db_path)

            assert os.path.exists(db_path)


class TestAnalysisLedger:
    """Test analysis insertion and retrieval."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_insert_and_fetch_round_trip(self):
        """Test stored fields come back unchanged."""
        row_id = insert_chart_analysis(_record(), self.db_path)

        records = fetch_recent_analyses(db_path=self.db_path)

        assert len(records) == 1
        record = records[0]
        assert record.id == row_id
        assert record.user_id == "user-1"
        assert record.pair_name == "EUR/USD"
        assert record.timeframe == "1 Hour"
        assert record.created_at == NOW
        assert record.analysis_data == {"overall_sentiment": "bullish", "take_profits": ["1.0950"]}

    def test_fetch_newest_first_with_filters(self):
        insert_chart_analysis(_record(created_at=NOW - timedelta(hours=2)), self.db_path)
        insert_chart_analysis(_record(created_at=NOW, pair_name="GBP/USD"), self.db_path)
        insert_chart_analysis(_record(user_id="user-2", created_at=NOW + timedelta(hours=1)), self.db_path)

        records = fetch_recent_analyses(user_id="user-1", db_path=self.db_path)
        assert [r.pair_name for r in records] == ["GBP/USD", "EUR/USD"]

        records = fetch_recent_analyses(pair_name="EUR/USD", db_path=self.db_path)
        assert [r.user_id for r in records] == ["user-2", "user-1"]

        records = fetch_recent_analyses(limit=1, db_path=self.db_path)
        assert len(records) == 1
        assert records[0].user_id == "user-2"

    def test_count_uses_half_open_window(self):
        """Analyses at the window end belong to the next window."""
        start = datetime(2024, 3, 15, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        insert_chart_analysis(_record(created_at=start), self.db_path)
        insert_chart_analysis(_record(created_at=end - timedelta(microseconds=1)), self.db_path)
        insert_chart_analysis(_record(created_at=end), self.db_path)
        insert_chart_analysis(_record(user_id="user-2", created_at=start), self.db_path)

        assert count_analyses("user-1", start, end, self.db_path) == 2
        assert count_analyses("user-3", start, end, self.db_path) == 0

    def test_non_utc_timestamps_counted_in_utc(self):
        """Timestamps are normalized to UTC before storing."""
        new_york = timezone(timedelta(hours=-5))
        # 21:00 in New York on the 14th is 02:00 UTC on the 15th
        insert_chart_analysis(_record(created_at=datetime(2024, 3, 14, 21, 0, tzinfo=new_york)), self.db_path)

        start = datetime(2024, 3, 15, tzinfo=timezone.utc)
        assert count_analyses("user-1", start, start + timedelta(days=1), self.db_path) == 1


class TestSubscribers:
    """Test subscriber persistence."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_subscriber(self):
        assert get_subscriber("nobody", self.db_path) is None

    def test_upsert_replaces_existing(self):
        end = NOW + timedelta(days=30)
        upsert_subscriber(Subscriber("user-1", "a@example.com", "starter", end), self.db_path)
        upsert_subscriber(Subscriber("user-1", "b@example.com", "pro", None), self.db_path)

        subscriber = get_subscriber("user-1", self.db_path)

        assert subscriber == Subscriber("user-1", "b@example.com", "pro", None)

    def test_subscription_end_round_trip(self):
        end = NOW + timedelta(days=30)
        upsert_subscriber(Subscriber("user-1", subscription_tier="pro", subscription_end=end), self.db_path)

        assert get_subscriber("user-1", self.db_path).subscription_end == end


class TestUsageRepository:
    """Test usage metering against the ledger."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.repository = UsageRepository(os.path.join(self.temp_dir, "test.db"))
        self.repository.initialize()

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_new_user_is_free_with_full_allowance(self):
        usage = self.repository.check_usage_limits("user-1", NOW)

        assert usage.subscription_tier == "free"
        assert (usage.daily_count, usage.daily_limit, usage.daily_remaining) == (0, 3, 3)
        assert (usage.monthly_count, usage.monthly_limit, usage.monthly_remaining) == (0, 90, 90)
        assert usage.can_analyze is True

    def test_recording_consumes_allowance(self):
        """Three analyses today exhaust the free daily limit."""
        for _ in range(3):
            self.repository.record_analysis(_record(created_at=NOW))

        usage = self.repository.check_usage_limits("user-1", NOW)

        assert usage.daily_count == 3
        assert usage.daily_remaining == 0
        assert usage.monthly_count == 3
        assert usage.can_analyze is False

    def test_daily_count_resets_at_utc_midnight(self):
        for _ in range(3):
            self.repository.record_analysis(_record(created_at=NOW))

        usage = self.repository.check_usage_limits("user-1", NOW.replace(day=16, hour=0))

        assert usage.daily_count == 0
        assert usage.monthly_count == 3
        assert usage.can_analyze is True

    def test_monthly_count_excludes_previous_month(self):
        self.repository.record_analysis(_record(created_at=datetime(2024, 2, 29, 23, 59, tzinfo=timezone.utc)))
        self.repository.record_analysis(_record(created_at=NOW))

        usage = self.repository.check_usage_limits("user-1", NOW)

        assert usage.monthly_count == 1

    def test_active_subscription_sets_tier(self):
        self.repository.set_subscription("user-1", SubscriptionTier.PRO, email="pro@example.com")

        usage = self.repository.check_usage_limits("user-1", NOW)

        assert usage.subscription_tier == "pro"
        assert usage.daily_limit == 30
        assert usage.monthly_limit == 900

    def test_expired_subscription_is_free(self):
        self.repository.set_subscription(
            "user-1", SubscriptionTier.STARTER, subscription_end=NOW - timedelta(seconds=1)
        )

        assert self.repository.get_subscription_tier("user-1", NOW) == SubscriptionTier.FREE

    def test_future_subscription_end_keeps_tier(self):
        self.repository.set_subscription(
            "user-1", SubscriptionTier.STARTER, subscription_end=NOW + timedelta(days=1)
        )

        assert self.repository.get_subscription_tier("user-1", NOW) == SubscriptionTier.STARTER

    def test_custom_plan_table(self):
        plans = PlanTable({
            SubscriptionTier.FREE: PlanLimits(daily=1, monthly=5),
            SubscriptionTier.STARTER: PlanLimits(daily=15, monthly=450),
            SubscriptionTier.PRO: PlanLimits(daily=30, monthly=900),
        })
        repository = UsageRepository(self.repository.db_path, plans)
        repository.record_analysis(_record(created_at=NOW))

        usage = repository.check_usage_limits("user-1", NOW)

        assert usage.daily_limit == 1
        assert usage.can_analyze is False

    def test_history_newest_first(self):
        self.repository.record_analysis(_record(created_at=NOW - timedelta(days=1), pair_name="EUR/USD"))
        self.repository.record_analysis(_record(created_at=NOW, pair_name="XAU/USD"))

        history = self.repository.get_history("user-1")

        assert [record.pair_name for record in history] == ["XAU/USD", "EUR/USD"]

    def test_recording_past_limit_refused(self):
        """The ledger never holds more analyses than the plan allows."""
        for _ in range(3):
            self.repository.record_analysis(_record(created_at=NOW))

        with pytest.raises(UsageLimitExceeded, match="Daily: 3/3") as exc_info:
            self.repository.record_analysis(_record(created_at=NOW))

        assert exc_info.value.usage.can_analyze is False
        assert len(self.repository.get_history("user-1")) == 3

    def test_monthly_limit_enforced_at_record_time(self):
        plans = PlanTable({
            SubscriptionTier.FREE: PlanLimits(daily=10, monthly=2),
            SubscriptionTier.STARTER: PlanLimits(daily=15, monthly=450),
            SubscriptionTier.PRO: PlanLimits(daily=30, monthly=900),
        })
        repository = UsageRepository(self.repository.db_path, plans)
        repository.record_analysis(_record(created_at=NOW.replace(day=1)))
        repository.record_analysis(_record(created_at=NOW))

        with pytest.raises(UsageLimitExceeded, match="Monthly: 2/2"):
            repository.record_analysis(_record(created_at=NOW))


class TestLimitedInsert:
    """Test the count-and-insert transaction."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_inserts_while_room_left(self):
        limits = PlanLimits(daily=2, monthly=10)

        assert insert_chart_analysis_within_limits(_record(), limits, self.db_path)[1:] == (1, 1)
        row_id, daily_count, monthly_count = insert_chart_analysis_within_limits(_record(), limits, self.db_path)

        assert row_id is not None
        assert (daily_count, monthly_count) == (2, 2)

    def test_refuses_full_window(self):
        limits = PlanLimits(daily=1, monthly=10)
        insert_chart_analysis(_record(), self.db_path)

        row_id, daily_count, monthly_count = insert_chart_analysis_within_limits(_record(), limits, self.db_path)

        assert row_id is None
        assert (daily_count, monthly_count) == (1, 1)
        assert len(fetch_recent_analyses(db_path=self.db_path)) == 1

    def test_concurrent_writers_respect_limit(self):
        limits = PlanLimits(daily=3, monthly=90)
        results = []

        def worker():
            results.append(insert_chart_analysis_within_limits(_record(), limits, self.db_path)[0])

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len([row_id for row_id in results if row_id is not None]) == 3
        assert count_analyses("user-1", NOW.replace(hour=0), NOW.replace(hour=23), self.db_path) == 3
