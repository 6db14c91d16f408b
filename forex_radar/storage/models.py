"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ChartAnalysisRecord:
    """Immutable record of one completed chart analysis.

    Append-only rows; daily and monthly usage are counted from them.
    """
    user_id: str
    pair_name: str
    timeframe: str
    created_at: datetime
    analysis_data: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


@dataclass(frozen=True)
class Subscriber:
    """Subscription state of a user."""
    user_id: str
    email: str = ""
    subscription_tier: str = "free"
    subscription_end: Optional[datetime] = None
