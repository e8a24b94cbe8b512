"""
Unit tests for the pricing catalog.

Tests tier lookup, quote accuracy, rounding behavior, and formatting.
"""

import pytest
from decimal import Decimal

from meetingsync_billing.core.errors import ConfigError
from meetingsync_billing.core.pricing import (
    DEFAULT_CATALOG,
    PricingCatalog,
    Tier,
    format_duration,
    to_cents,
)


class TestTierLookup:
    """Test tier table functionality."""

    def test_get_known_tier(self):
        """Verify rates for a configured tier."""
        starter = DEFAULT_CATALOG.get_tier("starter")
        assert starter.base_rate_per_hour == Decimal("45")
        assert starter.translation_limit == 1
        assert starter.total_language_limit == 2
        assert starter.overage_rate_per_hour == Decimal("10")

    def test_unknown_tier_raises_error(self):
        """Verify error for unknown tiers."""
        with pytest.raises(ConfigError, match="Unknown tier: platinum"):
            DEFAULT_CATALOG.get_tier("platinum")

    def test_unknown_tier_is_value_error(self):
        """Verify config errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            DEFAULT_CATALOG.get_tier("platinum")

    def test_all_tiers_in_order(self):
        """Verify tiers are listed in table order."""
        assert [tier.id for tier in DEFAULT_CATALOG.all_tiers()] == [
            "starter", "professional", "enterprise"
        ]

    def test_recommended_tier(self):
        """Verify the recommended tier carries its badge."""
        tier = DEFAULT_CATALOG.recommended_tier()
        assert tier.id == "professional"
        assert tier.badge == "MOST POPULAR"

    def test_free_tier_limits(self):
        """Verify the daily free tier allowance."""
        limits = DEFAULT_CATALOG.get_free_tier_limits()
        assert limits.daily_minutes == 15
        assert limits.translation_limit == 2
        assert limits.total_language_limit == 3

    def test_default_catalog_is_valid(self):
        """Verify the production table has no validation errors."""
        assert DEFAULT_CATALOG.validate() == []

    def test_validate_collects_errors(self):
        """Verify validation reports every problem."""
        catalog = PricingCatalog(tiers={
            "broken": Tier(
                id="other",
                name="Broken",
                base_rate_per_hour=Decimal("0"),
                translation_limit=1,
                total_language_limit=2,
                overage_rate_per_hour=Decimal("-1")
            )
        })
        errors = catalog.validate()
        assert len(errors) == 3


class TestSessionQuote:
    """Test quote accuracy and rounding."""

    def test_one_hour_starter(self):
        """Verify one hour at Starter with few participants."""
        assert DEFAULT_CATALOG.calculate_session_cost("starter", 1, 50) == Decimal("45.00")

    def test_participant_multiplier_applies(self):
        """Verify base cost scales with participants."""
        # $75 * 2 hr * 1.25
        cost = DEFAULT_CATALOG.calculate_session_cost("professional", 2, 150)
        assert cost == Decimal("187.50")

    def test_overage_languages_add_cost(self):
        """Verify overage languages are charged at the scaled overage rate."""
        # $187.50 base + 1 language * 0.5 hr * $8 * 1.25
        cost = DEFAULT_CATALOG.calculate_session_cost("professional", 2, 150, 1, 0.5)
        assert cost == Decimal("192.50")

    def test_rounds_half_up_to_cents(self):
        """Verify quotes are rounded to cents."""
        # $45 * 0.0001 hr = $0.0045 -> $0.00; $45 * 0.00012 = $0.0054 -> $0.01
        assert DEFAULT_CATALOG.calculate_session_cost("starter", 0.0001, 1) == Decimal("0.00")
        assert DEFAULT_CATALOG.calculate_session_cost("starter", 0.00012, 1) == Decimal("0.01")

    def test_zero_duration(self):
        """Verify zero hours costs nothing."""
        assert DEFAULT_CATALOG.calculate_session_cost("enterprise", 0, 500) == Decimal("0.00")

    def test_unknown_tier_quote_raises_error(self):
        """Verify quoting an unknown tier fails."""
        with pytest.raises(ConfigError):
            DEFAULT_CATALOG.calculate_session_cost("platinum", 1, 1)

    def test_upgrade_threshold(self):
        """Verify the overage hours that justify upgrading."""
        # ($75 - $45) / $10
        assert DEFAULT_CATALOG.get_upgrade_threshold("starter", "professional") == pytest.approx(3.0)

    def test_to_cents_half_up(self):
        """Verify explicit half-up rounding."""
        assert to_cents(Decimal("2.345")) == Decimal("2.35")
        assert to_cents(Decimal("2.344")) == Decimal("2.34")


class TestFormatting:
    """Test display helpers."""

    def test_format_currency(self):
        """Verify currency formatting with thousands separators."""
        assert DEFAULT_CATALOG.format_currency(Decimal("45")) == "$45.00"
        assert DEFAULT_CATALOG.format_currency(Decimal("1234.5")) == "$1,234.50"
        assert DEFAULT_CATALOG.format_currency(Decimal("-3")) == "-$3.00"

    def test_format_rate(self):
        """Verify hourly rate formatting."""
        assert DEFAULT_CATALOG.format_rate(Decimal("8")) == "$8.00/hr"

    def test_format_language_limits(self):
        """Verify singular and plural unit words."""
        assert DEFAULT_CATALOG.format_language_limits(5, 6) == "5 translations (6 total languages)"
        assert DEFAULT_CATALOG.format_language_limits(1, 2) == "1 translation (2 total languages)"

    def test_format_language_count(self):
        """Verify generic language counts."""
        assert DEFAULT_CATALOG.format_language_count(1) == "1 language"
        assert DEFAULT_CATALOG.format_language_count(3) == "3 languages"

    def test_format_duration(self):
        """Verify hour and minute formatting."""
        assert format_duration(0.75) == "45 min"
        assert format_duration(2.0) == "2 hr"
        assert format_duration(1.5) == "1 hr 30 min"
