"""
Cross-session usage accounting.

Keeps the per-user counters that outlive a single session: daily free
minutes and PAYG unpaid usage, together with the account mode and the
monthly tier lock.

Postpaid PAYG model:
- User adds a payment method (no upfront charge)
- Usage accumulates during the billing period
- Billed at the end of the month

Daily free tier:
- A fixed number of free minutes every day
- Reset is a logical-clock check against the stored reset date, not a job
"""

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Union

from loguru import logger

from ..storage.repository import KeyValueStore
from .errors import MissingContext, TierLocked

HIGH_USAGE_THRESHOLD = Decimal("150")


@dataclass(frozen=True)
class FreeTier:
    """No payment method: daily free minutes only."""


@dataclass(frozen=True)
class Payg:
    """Payment method on file; tier is chosen at the first session of a period."""
    tier_id: Optional[str] = None
    tier_selected_on: Optional[date] = None


AccountMode = Union[FreeTier, Payg]


@dataclass(frozen=True)
class UsageAccount:
    """Snapshot of one user's usage counters."""
    user_id: str
    mode: AccountMode = field(default_factory=FreeTier)
    daily_free_minutes_used: int = 0
    daily_free_minutes_remaining: int = 15
    daily_free_reset_date: Optional[date] = None
    unpaid_usage: Decimal = Decimal("0.00")
    billing_period_start: Optional[date] = None
    billing_period_end: Optional[date] = None

    @property
    def is_free_tier(self) -> bool:
        return isinstance(self.mode, FreeTier)

    @property
    def payment_method_added(self) -> bool:
        return isinstance(self.mode, Payg)

    @property
    def subscription_tier(self) -> Optional[str]:
        return self.mode.tier_id if isinstance(self.mode, Payg) else None

    @property
    def is_high_usage(self) -> bool:
        return self.unpaid_usage > HIGH_USAGE_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible primitives."""
        if isinstance(self.mode, Payg):
            mode = {
                "kind": "payg",
                "tier_id": self.mode.tier_id,
                "tier_selected_on": _iso(self.mode.tier_selected_on),
            }
        else:
            mode = {"kind": "free_tier"}
        return {
            "user_id": self.user_id,
            "mode": mode,
            "daily_free_minutes_used": self.daily_free_minutes_used,
            "daily_free_minutes_remaining": self.daily_free_minutes_remaining,
            "daily_free_reset_date": _iso(self.daily_free_reset_date),
            "unpaid_usage": str(self.unpaid_usage),
            "billing_period_start": _iso(self.billing_period_start),
            "billing_period_end": _iso(self.billing_period_end),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageAccount":
        """Rebuild an account from ``to_dict`` output.

        Raises:
            ValueError: If the mode kind is unknown
        """
        mode_data = data.get("mode") or {"kind": "free_tier"}
        kind = mode_data.get("kind")
        if kind == "payg":
            mode: AccountMode = Payg(
                tier_id=mode_data.get("tier_id"),
                tier_selected_on=_parse_date(mode_data.get("tier_selected_on"))
            )
        elif kind == "free_tier":
            mode = FreeTier()
        else:
            raise ValueError(f"Unknown account mode: {kind}")

        return cls(
            user_id=data["user_id"],
            mode=mode,
            daily_free_minutes_used=int(data.get("daily_free_minutes_used", 0)),
            daily_free_minutes_remaining=int(data.get("daily_free_minutes_remaining", 15)),
            daily_free_reset_date=_parse_date(data.get("daily_free_reset_date")),
            unpaid_usage=Decimal(data.get("unpaid_usage", "0.00")),
            billing_period_start=_parse_date(data.get("billing_period_start")),
            billing_period_end=_parse_date(data.get("billing_period_end")),
        )


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def account_key(user_id: str) -> str:
    """Key-value store key for a user's account."""
    return f"usage_account:{user_id}"


class UsageLedger:
    """Owner of one user's UsageAccount.

    The account is immutable; every operation replaces it and writes it
    through to the optional key-value store so it survives a reload.
    """

    def __init__(
        self,
        account: UsageAccount,
        daily_minutes: int = 15,
        store: Optional[KeyValueStore] = None,
        today: Callable[[], date] = date.today
    ):
        """Initialize the ledger.

        Args:
            account: Starting account state
            daily_minutes: Free minutes granted per day
            store: Optional key-value store with ``get``/``set``
            today: Local date provider
        """
        self.daily_minutes = daily_minutes
        self._store = store
        self._today = today
        self._account = account

    @classmethod
    def load(
        cls,
        user_id: str,
        store: Optional[KeyValueStore] = None,
        daily_minutes: int = 15,
        today: Callable[[], date] = date.today
    ) -> "UsageLedger":
        """Load a user's account from the store, creating a free tier one if absent."""
        account = None
        if store is not None:
            data = store.get(account_key(user_id))
            if data is not None:
                account = UsageAccount.from_dict(data)
        if account is None:
            account = UsageAccount(
                user_id=user_id,
                daily_free_minutes_remaining=daily_minutes
            )
        ledger = cls(account, daily_minutes=daily_minutes, store=store, today=today)
        ledger.reset_if_new_day()
        return ledger

    @property
    def account(self) -> UsageAccount:
        return self._account

    @property
    def is_free_tier(self) -> bool:
        return self._account.is_free_tier

    @property
    def daily_minutes_remaining(self) -> int:
        return self._account.daily_free_minutes_remaining if self.is_free_tier else 0

    # Daily free tier

    def record_free_minutes(self, minutes_used: int) -> None:
        """Add minutes to today's free usage, clamped to the daily allowance.

        Silently ignored for PAYG accounts.
        """
        if not self.is_free_tier:
            logger.debug("Ignoring free minutes for PAYG account {}", self._account.user_id)
            return
        if minutes_used < 0:
            raise ValueError("minutes_used cannot be negative")

        used = min(self.daily_minutes, self._account.daily_free_minutes_used + minutes_used)
        remaining = max(0, self.daily_minutes - used)
        self._update(daily_free_minutes_used=used, daily_free_minutes_remaining=remaining)
        logger.info(
            "Daily free: added {} minutes. Used: {}/{}, remaining: {}",
            minutes_used, used, self.daily_minutes, remaining
        )

    def reset_if_new_day(self) -> bool:
        """Reset daily counters when the stored reset date is not today.

        Returns:
            True if a reset happened
        """
        today = self._today()
        if self._account.daily_free_reset_date == today:
            return False

        logger.info(
            "Daily free: date changed ({} -> {}), resetting",
            self._account.daily_free_reset_date, today
        )
        self._update(
            daily_free_minutes_used=0,
            daily_free_minutes_remaining=self.daily_minutes,
            daily_free_reset_date=today
        )
        return True

    # PAYG

    def record_unpaid_usage(self, amount: Decimal) -> None:
        """Accumulate postpaid usage. Ignored for free tier accounts."""
        amount = Decimal(str(amount))
        if amount < 0:
            raise ValueError("amount cannot be negative")
        if self.is_free_tier:
            logger.debug("Ignoring unpaid usage for free tier account {}", self._account.user_id)
            return

        total = self._account.unpaid_usage + amount
        self._update(unpaid_usage=total)
        logger.info("Added ${:.2f} to unpaid usage. Total: ${:.2f}", amount, total)

    def settle_unpaid_usage(self) -> Decimal:
        """Bill the accumulated usage and start again from zero.

        Returns:
            The amount that was billed
        """
        billed = self._account.unpaid_usage
        self._update(unpaid_usage=Decimal("0.00"))
        logger.info("Settled ${:.2f} of unpaid usage for {}", billed, self._account.user_id)
        return billed

    def add_payment_method(self) -> None:
        """Switch a free tier account to PAYG. Already PAYG is a no-op."""
        if isinstance(self._account.mode, Payg):
            return
        self._update(mode=Payg())
        logger.info("Payment method added for {}", self._account.user_id)

    def remove_payment_method(self) -> None:
        """Return to the free tier. Unpaid usage is kept until billed."""
        if isinstance(self._account.mode, FreeTier):
            return
        self._update(mode=FreeTier())
        logger.info("Payment method removed for {}", self._account.user_id)

    # Tier lock

    def can_change_tier(self) -> bool:
        """A tier may change once the previous selection predates this month."""
        mode = self._account.mode
        if not isinstance(mode, Payg) or mode.tier_selected_on is None:
            return True
        return mode.tier_selected_on < first_of_month(self._today())

    def next_tier_change_date(self) -> date:
        return first_of_next_month(self._today())

    def days_until_tier_change(self) -> int:
        mode = self._account.mode
        if not isinstance(mode, Payg) or mode.tier_selected_on is None:
            return 0
        return (self.next_tier_change_date() - self._today()).days

    def tier_lock_message(self) -> str:
        mode = self._account.mode
        if not isinstance(mode, Payg) or mode.tier_selected_on is None:
            return ""
        next_change = self.next_tier_change_date()
        return f"You can select a new tier starting {next_change:%B} {next_change.day}, {next_change.year}"

    def select_tier(self, tier_id: str) -> None:
        """Choose the PAYG tier for the current billing period.

        Raises:
            MissingContext: If the account has no payment method
            TierLocked: If a different tier is already locked for this period
        """
        mode = self._account.mode
        if not isinstance(mode, Payg):
            raise MissingContext("A payment method is required before selecting a tier")
        if mode.tier_id == tier_id and not self.can_change_tier():
            return
        if not self.can_change_tier():
            raise TierLocked(
                f"Tier {mode.tier_id} is locked for this billing period. "
                f"{self.tier_lock_message()}"
            )

        today = self._today()
        period_end = first_of_next_month(today) - timedelta(days=1)
        self._update(
            mode=Payg(tier_id=tier_id, tier_selected_on=today),
            billing_period_start=today,
            billing_period_end=period_end
        )
        logger.info("Tier set to {} for billing period {} to {}", tier_id, today, period_end)

    def _update(self, **changes: Any) -> None:
        self._account = replace(self._account, **changes)
        if self._store is not None:
            self._store.set(account_key(self._account.user_id), self._account.to_dict())


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None
