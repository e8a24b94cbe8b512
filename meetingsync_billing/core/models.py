"""
Session data models.

Identity context, session configuration, events and the immutable snapshot
that callers read once per tick.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .overage import OverageLanguage


class SessionStatus(Enum):
    """Session lifecycle states."""
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"  # Terminal


class EndReason(Enum):
    """Why a session ended."""
    MANUAL = "manual"
    FREE_TIER_LIMIT = "free_tier_limit"


class EventType(Enum):
    """Events emitted to subscribers."""
    SESSION_STARTED = "session_started"
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    SESSION_ENDED = "session_ended"
    FREE_TIER_WARNING = "free_tier_warning"
    LANGUAGE_ADDED = "language_added"
    LANGUAGE_REMOVED = "language_removed"
    LANGUAGE_ALREADY_ACTIVE = "language_already_active"


@dataclass(frozen=True)
class MeetingContext:
    """Identity supplied by the host meeting SDK at session start."""
    meeting_id: str
    user_id: str
    user_role: str = "host"
    display_name: str = ""
    meeting_topic: Optional[str] = None


@dataclass(frozen=True)
class SessionConfig:
    """Host choices for a new session."""
    source_language: str
    target_languages: Tuple[str, ...]
    tier_id: Optional[str] = None  # Needed for the first PAYG session of a period
    meeting_type: str = "general"
    meeting_title: Optional[str] = None
    allow_language_requests: bool = False
    allow_participant_overage: bool = True
    participant_count: int = 0


@dataclass(frozen=True)
class SessionEvent:
    """Notification about a session transition."""
    type: EventType
    session_id: str
    at_seconds: int
    message: str = ""
    end_reason: Optional[EndReason] = None
    language_code: Optional[str] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session at one instant."""
    id: str
    user_id: str
    meeting_id: str
    host_name: str
    meeting_title: str
    meeting_type: str
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime]
    tier_id: Optional[str]
    is_free_tier: bool
    source_language: str
    target_languages: Tuple[str, ...]
    duration_seconds: int
    base_cost: Decimal
    participant_multiplier_value: Decimal
    participant_count: int
    peak_participant_count: int
    overages: Tuple[OverageLanguage, ...]
    overage_cost: Decimal
    cost: Decimal
    allow_language_requests: bool
    allow_participant_overage: bool
    end_reason: Optional[EndReason] = None

    @property
    def duration_hours(self) -> float:
        return self.duration_seconds / 3600

    @property
    def duration_minutes(self) -> Decimal:
        return Decimal(self.duration_seconds) / Decimal("60")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible primitives for archiving."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "meeting_id": self.meeting_id,
            "host_name": self.host_name,
            "meeting_title": self.meeting_title,
            "meeting_type": self.meeting_type,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "tier_id": self.tier_id,
            "is_free_tier": self.is_free_tier,
            "source_language": self.source_language,
            "target_languages": list(self.target_languages),
            "duration_seconds": self.duration_seconds,
            "base_cost": str(self.base_cost),
            "participant_multiplier_value": str(self.participant_multiplier_value),
            "participant_count": self.participant_count,
            "peak_participant_count": self.peak_participant_count,
            "overages": [
                {
                    "language_code": entry.language_code,
                    "added_at_minutes": str(entry.added_at_minutes),
                    "removed_at_minutes": (
                        str(entry.removed_at_minutes)
                        if entry.removed_at_minutes is not None else None
                    ),
                    "overage_rate_per_hour": str(entry.overage_rate_per_hour),
                    "calculated_cost": str(entry.calculated_cost),
                }
                for entry in self.overages
            ],
            "overage_cost": str(self.overage_cost),
            "cost": str(self.cost),
            "allow_language_requests": self.allow_language_requests,
            "allow_participant_overage": self.allow_participant_overage,
            "end_reason": self.end_reason.value if self.end_reason else None,
        }
