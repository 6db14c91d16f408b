"""
Repository pattern for data access.

Handles the analysis ledger, subscriber records and usage counting.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..core.plans import DEFAULT_PLAN_TABLE, PlanLimits, PlanTable, SubscriptionTier
from ..core.usage import UsageLimitExceeded, UsageRecord, compute_usage, daily_window, monthly_window
from .db import DEFAULT_DB_PATH, get_connection
from .models import ChartAnalysisRecord, Subscriber

logger = logging.getLogger(__name__)


def _to_db_timestamp(moment: datetime) -> str:
    """Fixed-width UTC timestamp so stored values compare lexicographically."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the chart_analyses and subscribers tables if they don't exist.

    chart_analyses is an append-only ledger: one row per completed analysis,
    never updated or deleted, so usage counts can always be recomputed.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chart_analyses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                pair_name TEXT NOT NULL,
                timeframe TEXT NOT NULL,
                analysis_data TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_chart_analyses_user_created
            ON chart_analyses (user_id, created_at)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS subscribers (
                user_id TEXT PRIMARY KEY,
                email TEXT NOT NULL DEFAULT '',
                subscription_tier TEXT NOT NULL DEFAULT 'free',
                subscription_end TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_chart_analysis(record: ChartAnalysisRecord, db_path: str = DEFAULT_DB_PATH) -> int:
    """Append a completed analysis to the ledger.

    Args:
        record: The analysis to record
        db_path: Path to SQLite database file

    Returns:
        Row id of the inserted analysis
    """
    conn = get_connection(db_path)
    try:
        row_id = _insert_row(conn, record)
        conn.commit()
        return row_id
    finally:
        conn.close()


def insert_chart_analysis_within_limits(
    record: ChartAnalysisRecord,
    limits: PlanLimits,
    db_path: str = DEFAULT_DB_PATH
) -> Tuple[Optional[int], int, int]:
    """Append an analysis only if the user's day and month still have room.

    The count and the insert run in one ``BEGIN IMMEDIATE`` transaction, so
    concurrent writers for the same database are serialized and can never
    push a window past its limit.

    Args:
        record: The analysis to record
        limits: Daily and monthly limits of the user's plan
        db_path: Path to SQLite database file

    Returns:
        Tuple of (row id or None if refused, daily count, monthly count); the
        counts include the new row when it was inserted
    """
    day_start, day_end = daily_window(record.created_at)
    month_start, month_end = monthly_window(record.created_at)

    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        daily_count = _count_rows(conn, record.user_id, day_start, day_end)
        monthly_count = _count_rows(conn, record.user_id, month_start, month_end)
        if daily_count >= limits.daily or monthly_count >= limits.monthly:
            conn.rollback()
            return None, daily_count, monthly_count

        row_id = _insert_row(conn, record)
        conn.commit()
        return row_id, daily_count + 1, monthly_count + 1
    finally:
        conn.close()


def _insert_row(conn: sqlite3.Connection, record: ChartAnalysisRecord) -> int:
    cursor = conn.execute("""
        INSERT INTO chart_analyses
        (user_id, pair_name, timeframe, analysis_data, created_at)
        VALUES (?, ?, ?, ?, ?)
    """, (
        record.user_id,
        record.pair_name,
        record.timeframe,
        json.dumps(record.analysis_data),
        _to_db_timestamp(record.created_at),
    ))
    return cursor.lastrowid


def _count_rows(conn: sqlite3.Connection, user_id: str, start: datetime, end: datetime) -> int:
    cursor = conn.execute("""
        SELECT COUNT(*) FROM chart_analyses
        WHERE user_id = ? AND created_at >= ? AND created_at < ?
    """, (user_id, _to_db_timestamp(start), _to_db_timestamp(end)))
    return cursor.fetchone()[0] or 0


def fetch_recent_analyses(
    user_id: Optional[str] = None,
    pair_name: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[ChartAnalysisRecord]:
    """Fetch recent analyses, optionally filtered by user and pair.

    Args:
        user_id: Optional filter for a specific user
        pair_name: Optional filter for a specific trading pair
        limit: Maximum number of analyses to return
        db_path: Path to SQLite database file

    Returns:
        List of analyses ordered by creation time (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT id, user_id, pair_name, timeframe, analysis_data, created_at
            FROM chart_analyses
        """
        params: list = []
        conditions = []

        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if pair_name:
            conditions.append("pair_name = ?")
            params.append(pair_name)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        return [
            ChartAnalysisRecord(
                id=row[0],
                user_id=row[1],
                pair_name=row[2],
                timeframe=row[3],
                analysis_data=json.loads(row[4]),
                created_at=_from_db_timestamp(row[5]),
            )
            for row in cursor.fetchall()
        ]
    finally:
        conn.close()


def count_analyses(
    user_id: str,
    start: datetime,
    end: datetime,
    db_path: str = DEFAULT_DB_PATH
) -> int:
    """Count a user's analyses created in the half-open window ``[start, end)``."""
    conn = get_connection(db_path)
    try:
        return _count_rows(conn, user_id, start, end)
    finally:
        conn.close()


def upsert_subscriber(subscriber: Subscriber, db_path: str = DEFAULT_DB_PATH) -> None:
    """Create or replace a subscriber's subscription state."""
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO subscribers (user_id, email, subscription_tier, subscription_end)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                email = excluded.email,
                subscription_tier = excluded.subscription_tier,
                subscription_end = excluded.subscription_end
        """, (
            subscriber.user_id,
            subscriber.email,
            subscriber.subscription_tier,
            _to_db_timestamp(subscriber.subscription_end) if subscriber.subscription_end else None,
        ))
        conn.commit()
    finally:
        conn.close()


def get_subscriber(user_id: str, db_path: str = DEFAULT_DB_PATH) -> Optional[Subscriber]:
    """Load a subscriber, or None if the user never subscribed."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            SELECT user_id, email, subscription_tier, subscription_end
            FROM subscribers WHERE user_id = ?
        """, (user_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return Subscriber(
            user_id=row[0],
            email=row[1],
            subscription_tier=row[2],
            subscription_end=_from_db_timestamp(row[3]),
        )
    finally:
        conn.close()


class UsageRepository:
    """Usage metering on top of the analysis ledger.

    Recording an analysis is what consumes a user's allowance; the usage
    record is always recomputed from the ledger rather than kept as a counter.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, plans: Optional[PlanTable] = None):
        """Initialize the repository.

        Args:
            db_path: Path to SQLite database file
            plans: Plan limits (defaults to the built-in table)
        """
        self.db_path = db_path
        self.plans = plans

    def initialize(self) -> None:
        initialize_schema(self.db_path)

    def get_subscription_tier(self, user_id: str, now: Optional[datetime] = None) -> SubscriptionTier:
        """Effective tier of a user; expired or missing subscriptions are free."""
        subscriber = get_subscriber(user_id, self.db_path)
        if subscriber is None:
            return SubscriptionTier.FREE
        if subscriber.subscription_end is not None:
            now = now or datetime.now(timezone.utc)
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            if subscriber.subscription_end <= now:
                return SubscriptionTier.FREE
        return SubscriptionTier.parse(subscriber.subscription_tier)

    def check_usage_limits(self, user_id: str, now: Optional[datetime] = None) -> UsageRecord:
        """Compute the user's usage record for the current UTC day and month.

        Args:
            user_id: User to check
            now: Reference time (defaults to now)

        Returns:
            UsageRecord for the user's effective tier
        """
        now = now or datetime.now(timezone.utc)
        tier = self.get_subscription_tier(user_id, now)
        day_start, day_end = daily_window(now)
        month_start, month_end = monthly_window(now)
        usage = compute_usage(
            tier,
            daily_count=count_analyses(user_id, day_start, day_end, self.db_path),
            monthly_count=count_analyses(user_id, month_start, month_end, self.db_path),
            plans=self.plans,
        )
        logger.debug("Usage for %s: %s", user_id, usage)
        return usage

    def record_analysis(self, record: ChartAnalysisRecord) -> int:
        """Append an analysis to the ledger, consuming one unit of allowance.

        The limit is re-checked atomically with the insert, so concurrent
        analyses for one user cannot overshoot the plan.

        Args:
            record: The completed analysis

        Returns:
            Row id of the recorded analysis

        Raises:
            UsageLimitExceeded: If the user's day or month is already full
        """
        tier = self.get_subscription_tier(record.user_id, record.created_at)
        limits = (self.plans or DEFAULT_PLAN_TABLE).get_limits(tier)
        row_id, daily_count, monthly_count = insert_chart_analysis_within_limits(
            record, limits, self.db_path
        )
        if row_id is None:
            logger.warning("Refused analysis for %s: limit reached at record time", record.user_id)
            raise UsageLimitExceeded(compute_usage(tier, daily_count, monthly_count, self.plans))
        logger.info("Recorded analysis %d for %s (%s %s)", row_id, record.user_id, record.pair_name, record.timeframe)
        return row_id

    def get_history(self, user_id: str, limit: int = 50) -> List[ChartAnalysisRecord]:
        return fetch_recent_analyses(user_id=user_id, limit=limit, db_path=self.db_path)

    def set_subscription(
        self,
        user_id: str,
        tier: SubscriptionTier,
        email: str = "",
        subscription_end: Optional[datetime] = None,
    ) -> None:
        upsert_subscriber(
            Subscriber(
                user_id=user_id,
                email=email,
                subscription_tier=tier.value,
                subscription_end=subscription_end,
            ),
            self.db_path,
        )
