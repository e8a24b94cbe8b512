"""
Session accounting engine.

Explicit state machine for one live translation session:

    not_started -> active <-> paused -> ended (terminal)

The engine owns a single repeating timer that calls ``tick()`` once per
second while the session is active. Every tick recomputes, in order:
1. Duration - one more second
2. Participant multiplier - from the current (or peak) participant count
3. Base cost - PAYG only, free tier base cost is always 0
4. Overage cost - read-only projection from the OverageLedger
5. Cost - base cost + overage cost

The free tier cap is checked on every tick and ends the session through the
normal stop path once the day's remaining minutes are used up.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from loguru import logger

from .errors import (
    ConfigError,
    FreeTierExhausted,
    InvalidSessionConfig,
    InvalidTransition,
    LanguageLimitExceeded,
    LanguageNotFound,
    MissingContext,
    ParticipantLimitExceeded,
    SessionAlreadyActive,
)
from .models import (
    EndReason,
    EventType,
    MeetingContext,
    SessionConfig,
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
)
from .multiplier import compute_multiplier
from .overage import OverageLedger
from .pricing import PricingCatalog, Tier, to_cents
from .timer import RepeatingTimer
from .usage import UsageLedger

SECONDS_PER_HOUR = Decimal("3600")
SECONDS_PER_MINUTE = Decimal("60")

Listener = Callable[[SessionEvent], None]


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for the engine."""
    warning_lead_seconds: int = 120  # Free tier warning before the cap
    tick_interval: float = 1.0
    bill_on_peak_participants: bool = False


@dataclass
class Session:
    """Mutable session state. Only the engine touches it."""
    id: str
    user_id: str
    meeting_id: str
    host_name: str
    meeting_title: str
    meeting_type: str
    started_at: datetime
    tier: Optional[Tier]
    source_language: str
    target_languages: List[str]
    allow_language_requests: bool
    allow_participant_overage: bool
    status: SessionStatus = SessionStatus.ACTIVE
    ended_at: Optional[datetime] = None
    duration_seconds: int = 0
    participant_count: int = 0
    peak_participant_count: int = 0
    participant_multiplier_value: Decimal = Decimal("1.00")
    base_cost: Decimal = Decimal("0.00")
    overage_cost: Decimal = Decimal("0.00")
    cost: Decimal = Decimal("0.00")
    end_reason: Optional[EndReason] = None
    overages: OverageLedger = field(default_factory=OverageLedger)

    @property
    def is_free_tier(self) -> bool:
        return self.tier is None

    @property
    def duration_minutes(self) -> Decimal:
        return Decimal(self.duration_seconds) / SECONDS_PER_MINUTE


class SessionAccountingEngine:
    """Tracks duration and cost of one session at a time.

    All public methods are synchronous and serialised with a re-entrant
    lock, so timer ticks and caller operations never interleave. Callers
    read state through ``snapshot()`` only.
    """

    def __init__(
        self,
        catalog: PricingCatalog,
        usage: UsageLedger,
        settings: Optional[EngineSettings] = None,
        timer_factory: Callable[[float, Callable[[], None]], object] = RepeatingTimer,
        archive: Optional[object] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        """Initialize the engine.

        Args:
            catalog: Pricing configuration (immutable)
            usage: Ledger of the account that runs sessions on this engine
            settings: Engine tunables
            timer_factory: Builds the repeating tick timer from (interval, callback)
            archive: Optional store with ``save(snapshot)`` for ended sessions
            now: Wall-clock provider for start/end timestamps

        Raises:
            ConfigError: If the ledger and catalog disagree on daily free minutes
        """
        if usage.daily_minutes != catalog.free_tier.daily_minutes:
            raise ConfigError(
                f"Usage ledger allows {usage.daily_minutes} free minutes a day, "
                f"pricing catalog allows {catalog.free_tier.daily_minutes}"
            )
        self.catalog = catalog
        self.usage = usage
        self.settings = settings or EngineSettings()
        self._timer_factory = timer_factory
        self._archive = archive
        self._now = now
        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._timer = None
        self._timer_generation = 0
        self._listeners: List[Listener] = []
        self._history: List[SessionSnapshot] = []
        self._free_limit_seconds: Optional[int] = None
        self._warning_sent = False

    # Read side

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            if self._session is None:
                return SessionStatus.NOT_STARTED
            return self._session.status

    @property
    def history(self) -> List[SessionSnapshot]:
        with self._lock:
            return list(self._history)

    @property
    def free_limit_seconds(self) -> Optional[int]:
        return self._free_limit_seconds

    def snapshot(self) -> Optional[SessionSnapshot]:
        """Immutable copy of the current session, or None."""
        with self._lock:
            if self._session is None:
                return None
            return self._snapshot(self._session)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an event listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Transitions

    def start(self, config: SessionConfig, context: Optional[MeetingContext]) -> SessionSnapshot:
        """Start a new session.

        Args:
            config: Languages, tier and permissions chosen by the host
            context: Meeting identity from the host SDK

        Returns:
            Snapshot of the new active session

        Raises:
            MissingContext: If identity or a PAYG tier is unavailable
            SessionAlreadyActive: If a session is active or paused
            InvalidSessionConfig: If the languages are unusable
            FreeTierExhausted: If no free minutes are left today
            ConfigError: If the tier id is unknown
            TierLocked: If another tier is locked for this billing period
        """
        with self._lock:
            if context is None or not context.user_id or not context.meeting_id:
                raise MissingContext("Cannot start session without meeting and user context")
            if context.user_id != self.usage.account.user_id:
                raise MissingContext(f"No usage account loaded for user {context.user_id}")
            if self._session is not None and self._session.status in (
                    SessionStatus.ACTIVE, SessionStatus.PAUSED):
                raise SessionAlreadyActive(self._session.id)

            self.usage.reset_if_new_day()
            targets = _validate_languages(config)
            self._check_participant_count(config.participant_count, config.allow_participant_overage)

            tier: Optional[Tier] = None
            limit_seconds: Optional[int] = None
            if self.usage.is_free_tier:
                remaining = self.usage.daily_minutes_remaining
                if remaining <= 0:
                    raise FreeTierExhausted(
                        f"No free minutes remaining today ({self.usage.daily_minutes} used)"
                    )
                translation_limit = self.catalog.free_tier.translation_limit
                limit_seconds = remaining * 60
            else:
                tier = self._resolve_tier(config)
                translation_limit = tier.translation_limit

            if len(targets) > translation_limit:
                raise InvalidSessionConfig(
                    f"{len(targets)} target languages exceed the limit of {translation_limit}"
                )
            if tier is not None:
                self._lock_tier(tier)

            session = Session(
                id=f"session_{uuid.uuid4().hex[:12]}",
                user_id=context.user_id,
                meeting_id=context.meeting_id,
                host_name=context.display_name,
                meeting_title=config.meeting_title or context.meeting_topic or "Untitled Meeting",
                meeting_type=config.meeting_type,
                started_at=self._now(),
                tier=tier,
                source_language=config.source_language,
                target_languages=targets,
                allow_language_requests=config.allow_language_requests,
                allow_participant_overage=config.allow_participant_overage,
                participant_count=config.participant_count,
                peak_participant_count=config.participant_count
            )
            session.participant_multiplier_value = self._multiplier_for(session)

            self._session = session
            self._free_limit_seconds = limit_seconds
            self._warning_sent = False
            self._start_timer()

            logger.info(
                "Session {} started (tier={}, languages={}->{})",
                session.id, tier.id if tier else "free", session.source_language,
                ",".join(targets)
            )
            self._emit(EventType.SESSION_STARTED, session)
            return self._snapshot(session)

    def tick(self) -> SessionSnapshot:
        """Advance the session by one second and recompute cost.

        A paused session is left untouched.

        Raises:
            InvalidTransition: If no session is running
        """
        with self._lock:
            session = self._require("tick", SessionStatus.ACTIVE, SessionStatus.PAUSED)
            if session.status == SessionStatus.PAUSED:
                return self._snapshot(session)

            self.usage.reset_if_new_day()
            session.duration_seconds += 1

            warning = None
            limit_reached = False
            if self._free_limit_seconds is not None:
                limit = self._free_limit_seconds
                warning_at = max(limit - self.settings.warning_lead_seconds, 0)
                if not self._warning_sent and session.duration_seconds >= warning_at:
                    self._warning_sent = True
                    remaining = max(limit - session.duration_seconds, 0)
                    logger.warning("Session {}: free tier has {}s remaining", session.id, remaining)
                    warning = SessionEvent(
                        type=EventType.FREE_TIER_WARNING,
                        session_id=session.id,
                        at_seconds=session.duration_seconds,
                        message=f"Daily Free Tier: {_minutes_text(remaining)} remaining"
                    )
                if session.duration_seconds >= limit:
                    session.duration_seconds = limit
                    limit_reached = True

            self._recompute(session)
            snapshot = None
            if limit_reached:
                logger.warning("Session {}: daily free tier limit reached, ending session", session.id)
                snapshot = self._finish(session, EndReason.FREE_TIER_LIMIT)

            # Listeners only see the tick once every mutation above is done
            if warning is not None:
                self._publish(warning)
            if limit_reached:
                self._emit_ended(session)
            return snapshot or self._snapshot(session)

    def pause(self) -> SessionSnapshot:
        """Pause an active session. Duration and cost stop accruing.

        Raises:
            InvalidTransition: If the session is not active
        """
        with self._lock:
            session = self._require("pause", SessionStatus.ACTIVE)
            self._cancel_timer()
            session.status = SessionStatus.PAUSED
            logger.info("Session {} paused at {}s", session.id, session.duration_seconds)
            self._emit(EventType.SESSION_PAUSED, session)
            return self._snapshot(session)

    def resume(self) -> SessionSnapshot:
        """Resume a paused session.

        Raises:
            InvalidTransition: If the session is not paused
        """
        with self._lock:
            session = self._require("resume", SessionStatus.PAUSED)
            session.status = SessionStatus.ACTIVE
            self._start_timer()
            logger.info("Session {} resumed at {}s", session.id, session.duration_seconds)
            self._emit(EventType.SESSION_RESUMED, session)
            return self._snapshot(session)

    def stop(self) -> SessionSnapshot:
        """End the session at the host's request.

        Raises:
            InvalidTransition: If the session is not active or paused
        """
        with self._lock:
            session = self._require("stop", SessionStatus.ACTIVE, SessionStatus.PAUSED)
            snapshot = self._finish(session, EndReason.MANUAL)
            self._emit_ended(session)
            return snapshot

    def clear(self) -> None:
        """Drop an ended session from "current".

        Raises:
            InvalidTransition: If the session is still running
        """
        with self._lock:
            if self._session is None:
                return
            if self._session.status != SessionStatus.ENDED:
                raise InvalidTransition("clear", self._session.status.value)
            self._session = None
            self._free_limit_seconds = None

    # Languages and participants

    def add_language(self, language_code: str, requested_by_participant: bool = False) -> bool:
        """Add a target language mid-session.

        Languages within the tier's translation limit are included; beyond
        it a PAYG session opens an overage interval at the current minute.
        Adding a language that is already a target is a no-op, so repeated
        approvals never charge twice.

        Included slots are targets minus open overage languages. An open
        overage keeps accruing until it is removed, even after removing an
        included language frees a slot; the freed slot goes to the next
        language added.

        Args:
            language_code: Language to add
            requested_by_participant: True when approving a participant request

        Returns:
            True if the language was added, False if it was already present

        Raises:
            InvalidTransition: If the session is not active or paused
            InvalidSessionConfig: If the language is the source language
            LanguageLimitExceeded: If the free tier limit is reached or
                participant requests are disabled
        """
        with self._lock:
            session = self._require("add a language to", SessionStatus.ACTIVE, SessionStatus.PAUSED)
            if requested_by_participant and not session.allow_language_requests:
                raise LanguageLimitExceeded("Language requests are disabled for this session")
            if language_code == session.source_language:
                raise InvalidSessionConfig(f"{language_code} is the source language")
            if language_code in session.target_languages:
                logger.warning("Session {}: language already in session: {}", session.id, language_code)
                self._emit(EventType.LANGUAGE_ALREADY_ACTIVE, session, language_code=language_code)
                return False

            included = len(session.target_languages) - len(session.overages.open_codes())
            if session.is_free_tier:
                limit = self.catalog.free_tier.translation_limit
            else:
                limit = session.tier.translation_limit

            if included < limit:
                message = "included"
            elif session.is_free_tier:
                raise LanguageLimitExceeded(
                    f"Free tier includes {self.catalog.format_language_count(limit, 'translation')}"
                )
            else:
                session.overages.add_language(
                    language_code,
                    session.duration_minutes,
                    session.tier.overage_rate_per_hour
                )
                message = f"overage at {self.catalog.format_rate(session.tier.overage_rate_per_hour)}"

            session.target_languages.append(language_code)
            self._recompute(session)
            logger.info("Session {}: language {} added ({})", session.id, language_code, message)
            self._emit(EventType.LANGUAGE_ADDED, session, message=message, language_code=language_code)
            return True


    def remove_language(self, language_code: str) -> None:
        """Remove a target language mid-session.

        An overage language has its interval closed and its cost frozen.

        Raises:
            InvalidTransition: If the session is not active or paused
            LanguageNotFound: If the language is not a target
            InvalidSessionConfig: If it is the last remaining target
        """
        with self._lock:
            session = self._require("remove a language from", SessionStatus.ACTIVE, SessionStatus.PAUSED)
            if language_code not in session.target_languages:
                raise LanguageNotFound(language_code)
            if len(session.target_languages) == 1:
                raise InvalidSessionConfig("A session needs at least one target language")

            if session.overages.is_open(language_code):
                closed = session.overages.remove_language(
                    language_code,
                    session.duration_minutes,
                    self._multiplier_for(session)
                )
                message = f"overage closed at {self.catalog.format_currency(closed.calculated_cost)}"
            else:
                message = "included"

            session.target_languages.remove(language_code)
            self._recompute(session)
            logger.info("Session {}: language {} removed ({})", session.id, language_code, message)
            self._emit(EventType.LANGUAGE_REMOVED, session, message=message, language_code=language_code)

    def set_participant_count(self, count: int) -> None:
        """Record the current participant count.

        The multiplier follows on the next tick.

        Raises:
            ValueError: If the count is negative
            ParticipantLimitExceeded: If participant overage is disabled
            InvalidTransition: If the session is not active or paused
        """
        with self._lock:
            session = self._require(
                "update participants of", SessionStatus.ACTIVE, SessionStatus.PAUSED
            )
            self._check_participant_count(count, session.allow_participant_overage)
            session.participant_count = count
            session.peak_participant_count = max(session.peak_participant_count, count)

    # Internals

    def _require(self, operation: str, *allowed: SessionStatus) -> Session:
        session = self._session
        if session is None:
            raise InvalidTransition(operation, SessionStatus.NOT_STARTED.value)
        if session.status not in allowed:
            raise InvalidTransition(operation, session.status.value)
        return session

    def _resolve_tier(self, config: SessionConfig) -> Tier:
        tier_id = config.tier_id or self.usage.account.subscription_tier
        if tier_id is None:
            raise MissingContext("A PAYG tier must be selected before the first session")
        return self.catalog.get_tier(tier_id)

    def _lock_tier(self, tier: Tier) -> None:
        if tier.id != self.usage.account.subscription_tier or self.usage.can_change_tier():
            self.usage.select_tier(tier.id)

    def _check_participant_count(self, count: int, allow_overage: bool) -> None:
        if count < 0:
            raise ValueError("participant count cannot be negative")
        threshold = self.catalog.scaling.base_threshold
        if not allow_overage and count > threshold:
            raise ParticipantLimitExceeded(
                f"{count} participants exceed {threshold}; participant overage is disabled"
            )

    def _multiplier_for(self, session: Session) -> Decimal:
        count = session.participant_count
        if self.settings.bill_on_peak_participants:
            count = session.peak_participant_count
        return compute_multiplier(count, self.catalog.scaling).multiplier

    def _recompute(self, session: Session) -> None:
        multiplier = self._multiplier_for(session)
        if session.tier is not None:
            hours = Decimal(session.duration_seconds) / SECONDS_PER_HOUR
            base_cost = to_cents(session.tier.base_rate_per_hour * hours * multiplier)
        else:
            base_cost = Decimal("0.00")
        overage_cost = session.overages.total_cost(session.duration_minutes, multiplier)

        session.participant_multiplier_value = multiplier
        session.base_cost = base_cost
        session.overage_cost = overage_cost
        session.cost = base_cost + overage_cost
        session.peak_participant_count = max(session.peak_participant_count, session.participant_count)

    def _finish(self, session: Session, reason: EndReason) -> SessionSnapshot:
        self._cancel_timer()
        multiplier = self._multiplier_for(session)
        session.overages.close_all_open(session.duration_minutes, multiplier)
        self._recompute(session)
        session.status = SessionStatus.ENDED
        session.ended_at = self._now()
        session.end_reason = reason

        snapshot = self._snapshot(session)
        self._settle_usage(snapshot)
        self._history.append(snapshot)
        if self._archive is not None:
            self._archive.save(snapshot)

        logger.info(
            "Session {} ended ({}): {}s, cost {}",
            session.id, reason.value, session.duration_seconds,
            self.catalog.format_currency(session.cost)
        )
        return snapshot

    def _emit_ended(self, session: Session) -> None:
        if session.end_reason == EndReason.FREE_TIER_LIMIT:
            message = (
                f"Daily Free Tier: {self.usage.daily_minutes}-minute limit reached. "
                "Session has ended."
            )
        else:
            message = "Session ended"
        self._emit(EventType.SESSION_ENDED, session, message=message, end_reason=session.end_reason)

    def _settle_usage(self, snapshot: SessionSnapshot) -> None:
        if snapshot.is_free_tier:
            minutes_used = -(-snapshot.duration_seconds // 60)
            if minutes_used > 0:
                self.usage.record_free_minutes(minutes_used)
        elif snapshot.cost > 0:
            self.usage.record_unpaid_usage(snapshot.cost)

    def _start_timer(self) -> None:
        self._cancel_timer()
        generation = self._timer_generation
        self._timer = self._timer_factory(
            self.settings.tick_interval, lambda: self._on_timer(generation)
        )
        self._timer.start()

    def _cancel_timer(self) -> None:
        # Callbacks already in flight from the old timer see a stale generation
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation or self._timer is None:
                return
            if self._session is None or self._session.status != SessionStatus.ACTIVE:
                return
            try:
                self.tick()
            except Exception:
                logger.exception("Session {}: tick failed", self._session.id)

    def _emit(self, event_type: EventType, session: Session, **details) -> None:
        self._publish(SessionEvent(
            type=event_type,
            session_id=session.id,
            at_seconds=session.duration_seconds,
            **details
        ))

    def _publish(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on {} for session {}", event.type.value, event.session_id)

    def _snapshot(self, session: Session) -> SessionSnapshot:
        return SessionSnapshot(
            id=session.id,
            user_id=session.user_id,
            meeting_id=session.meeting_id,
            host_name=session.host_name,
            meeting_title=session.meeting_title,
            meeting_type=session.meeting_type,
            status=session.status,
            started_at=session.started_at,
            ended_at=session.ended_at,
            tier_id=session.tier.id if session.tier else None,
            is_free_tier=session.is_free_tier,
            source_language=session.source_language,
            target_languages=tuple(session.target_languages),
            duration_seconds=session.duration_seconds,
            base_cost=session.base_cost,
            participant_multiplier_value=session.participant_multiplier_value,
            participant_count=session.participant_count,
            peak_participant_count=session.peak_participant_count,
            overages=session.overages.entries,
            overage_cost=session.overage_cost,
            cost=session.cost,
            allow_language_requests=session.allow_language_requests,
            allow_participant_overage=session.allow_participant_overage,
            end_reason=session.end_reason
        )


def _validate_languages(config: SessionConfig) -> List[str]:
    targets = list(config.target_languages)
    if not config.source_language:
        raise InvalidSessionConfig("A source language is required")
    if not targets:
        raise InvalidSessionConfig("At least one target language is required")
    if len(set(targets)) != len(targets):
        raise InvalidSessionConfig("Target languages must be unique")
    if config.source_language in targets:
        raise InvalidSessionConfig("The source language cannot also be a target")
    return targets


def _minutes_text(seconds: int) -> str:
    minutes = -(-seconds // 60)
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
