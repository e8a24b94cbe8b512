"""
MeetingSync billing.

Live session accounting for meeting translation: tiered PAYG pricing,
participant scaling, overage languages and the daily free tier cap.
"""

from loguru import logger

from .core.engine import EngineSettings, SessionAccountingEngine
from .core.models import EndReason, EventType, MeetingContext, SessionConfig, SessionStatus
from .core.pricing import DEFAULT_CATALOG, PricingCatalog
from .core.usage import UsageLedger

# Library code stays quiet until an application enables it
logger.disable("meetingsync_billing")

__all__ = [
    "DEFAULT_CATALOG",
    "EndReason",
    "EngineSettings",
    "EventType",
    "MeetingContext",
    "PricingCatalog",
    "SessionAccountingEngine",
    "SessionConfig",
    "SessionStatus",
    "UsageLedger",
]
