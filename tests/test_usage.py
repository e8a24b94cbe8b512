"""
Unit tests for cross-session usage accounting.

Tests the daily free allowance, postpaid usage and the monthly tier lock.
"""

from datetime import date
from decimal import Decimal

import pytest

from meetingsync_billing.core.errors import MissingContext, TierLocked
from meetingsync_billing.core.usage import (
    FreeTier,
    Payg,
    UsageAccount,
    UsageLedger,
    account_key,
    first_of_next_month,
)
from meetingsync_billing.storage.repository import InMemoryStore


class FakeToday:
    """Controllable local date."""

    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


class TestDailyFreeTier:
    """Test daily free minutes."""

    def setup_method(self):
        self.today = FakeToday(date(2026, 10, 19))
        self.store = InMemoryStore()
        self.ledger = UsageLedger.load("user-1", self.store, today=self.today)

    def test_new_account_is_free_tier(self):
        """Verify a fresh account starts with the full allowance."""
        account = self.ledger.account
        assert isinstance(account.mode, FreeTier)
        assert account.daily_free_minutes_used == 0
        assert account.daily_free_minutes_remaining == 15
        assert account.daily_free_reset_date == date(2026, 10, 19)

    def test_record_minutes(self):
        """Verify used and remaining always add up to the allowance."""
        self.ledger.record_free_minutes(10)
        assert self.ledger.account.daily_free_minutes_used == 10
        assert self.ledger.account.daily_free_minutes_remaining == 5

    def test_record_minutes_clamps_to_allowance(self):
        """Verify usage never exceeds the daily allowance."""
        self.ledger.record_free_minutes(10)
        self.ledger.record_free_minutes(10)
        assert self.ledger.account.daily_free_minutes_used == 15
        assert self.ledger.account.daily_free_minutes_remaining == 0

    def test_negative_minutes_raise_error(self):
        with pytest.raises(ValueError):
            self.ledger.record_free_minutes(-1)

    def test_reset_on_new_day(self):
        """Verify a date change restores the allowance."""
        self.ledger.record_free_minutes(15)
        assert self.ledger.reset_if_new_day() is False

        self.today.day = date(2026, 10, 20)
        assert self.ledger.reset_if_new_day() is True
        assert self.ledger.account.daily_free_minutes_remaining == 15
        assert self.ledger.account.daily_free_reset_date == date(2026, 10, 20)

    def test_load_resets_stale_account(self):
        """Verify loading an account from an earlier day resets it."""
        self.ledger.record_free_minutes(15)
        self.today.day = date(2026, 10, 21)

        reloaded = UsageLedger.load("user-1", self.store, today=self.today)

        assert reloaded.account.daily_free_minutes_used == 0
        assert reloaded.daily_minutes_remaining == 15

    def test_unpaid_usage_ignored_on_free_tier(self):
        """Verify free tier accounts never accrue charges."""
        self.ledger.record_unpaid_usage(Decimal("10"))
        assert self.ledger.account.unpaid_usage == Decimal("0.00")


class TestPaygUsage:
    """Test postpaid usage."""

    def setup_method(self):
        self.today = FakeToday(date(2026, 10, 19))
        self.ledger = UsageLedger.load("user-1", InMemoryStore(), today=self.today)
        self.ledger.add_payment_method()

    def test_payment_method_switches_mode(self):
        """Verify the account mode is exactly one of free tier or PAYG."""
        account = self.ledger.account
        assert account.payment_method_added
        assert not account.is_free_tier
        assert self.ledger.daily_minutes_remaining == 0

    def test_free_minutes_ignored_for_payg(self):
        self.ledger.record_free_minutes(5)
        assert self.ledger.account.daily_free_minutes_used == 0

    def test_unpaid_usage_accumulates(self):
        """Verify session costs add up until billed."""
        self.ledger.record_unpaid_usage(Decimal("45.00"))
        self.ledger.record_unpaid_usage(Decimal("27.50"))
        assert self.ledger.account.unpaid_usage == Decimal("72.50")

        assert self.ledger.settle_unpaid_usage() == Decimal("72.50")
        assert self.ledger.account.unpaid_usage == Decimal("0.00")

    def test_negative_usage_raises_error(self):
        with pytest.raises(ValueError):
            self.ledger.record_unpaid_usage(Decimal("-1"))

    def test_high_usage_flag(self):
        """Verify the high usage flag above $150."""
        self.ledger.record_unpaid_usage(Decimal("150"))
        assert not self.ledger.account.is_high_usage
        self.ledger.record_unpaid_usage(Decimal("0.01"))
        assert self.ledger.account.is_high_usage

    def test_remove_payment_method_keeps_unpaid_usage(self):
        """Verify returning to free tier does not forgive usage."""
        self.ledger.record_unpaid_usage(Decimal("20"))
        self.ledger.remove_payment_method()

        assert self.ledger.account.is_free_tier
        assert self.ledger.account.unpaid_usage == Decimal("20")


class TestTierLock:
    """Test the monthly tier lock."""

    def setup_method(self):
        self.today = FakeToday(date(2026, 10, 19))
        self.ledger = UsageLedger.load("user-1", InMemoryStore(), today=self.today)

    def test_select_tier_requires_payment_method(self):
        with pytest.raises(MissingContext):
            self.ledger.select_tier("starter")

    def test_select_tier_sets_billing_period(self):
        """Verify selection locks the tier until the end of the month."""
        self.ledger.add_payment_method()
        self.ledger.select_tier("starter")

        account = self.ledger.account
        assert account.mode == Payg(tier_id="starter", tier_selected_on=date(2026, 10, 19))
        assert account.billing_period_start == date(2026, 10, 19)
        assert account.billing_period_end == date(2026, 10, 31)
        assert not self.ledger.can_change_tier()
        assert self.ledger.days_until_tier_change() == 13
        assert self.ledger.tier_lock_message() == "You can select a new tier starting November 1, 2026"

    def test_change_in_same_month_raises_error(self):
        """Verify a different tier is refused during the period."""
        self.ledger.add_payment_method()
        self.ledger.select_tier("starter")

        with pytest.raises(TierLocked):
            self.ledger.select_tier("professional")
        assert self.ledger.account.subscription_tier == "starter"

    def test_reselecting_locked_tier_is_noop(self):
        self.ledger.add_payment_method()
        self.ledger.select_tier("starter")
        self.ledger.select_tier("starter")
        assert self.ledger.account.subscription_tier == "starter"

    def test_change_allowed_next_month(self):
        """Verify the lock lifts on the first of the next month."""
        self.ledger.add_payment_method()
        self.ledger.select_tier("starter")

        self.today.day = date(2026, 11, 1)
        assert self.ledger.can_change_tier()
        self.ledger.select_tier("enterprise")
        assert self.ledger.account.subscription_tier == "enterprise"
        assert self.ledger.account.billing_period_end == date(2026, 11, 30)

    def test_first_of_next_month_wraps_year(self):
        assert first_of_next_month(date(2026, 12, 15)) == date(2027, 1, 1)


class TestPersistence:
    """Test account serialization."""

    def test_every_change_is_written_through(self):
        """Verify the store always holds the current account."""
        store = InMemoryStore()
        ledger = UsageLedger.load("user-1", store, today=lambda: date(2026, 10, 19))
        ledger.record_free_minutes(4)

        stored = store.get(account_key("user-1"))
        assert UsageAccount.from_dict(stored) == ledger.account

    def test_payg_round_trip(self):
        account = UsageAccount(
            user_id="user-1",
            mode=Payg(tier_id="professional", tier_selected_on=date(2026, 10, 1)),
            unpaid_usage=Decimal("99.99"),
            daily_free_reset_date=date(2026, 10, 19)
        )
        assert UsageAccount.from_dict(account.to_dict()) == account

    def test_unknown_mode_raises_error(self):
        with pytest.raises(ValueError, match="Unknown account mode"):
            UsageAccount.from_dict({"user_id": "user-1", "mode": {"kind": "trial"}})
