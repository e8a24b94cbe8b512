"""
Data models for storage layer.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ArchivedSession:
    """Immutable record of an ended session.

    Append-only rows that form the audit trail of what each session cost.
    """
    session_id: str
    user_id: str
    started_at: datetime
    ended_at: Optional[datetime]
    tier_id: Optional[str]
    is_free_tier: bool
    duration_seconds: int
    cost: Decimal
    end_reason: Optional[str]
    payload: Dict[str, Any]
