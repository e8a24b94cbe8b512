"""
Pricing catalog and rate management.

Holds the PAYG tier table, free tier limits and participant scaling, plus
formatting and quoting helpers. Everything here is immutable and pure.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from .errors import ConfigError
from .multiplier import DEFAULT_SCALING, ParticipantScaling, compute_multiplier

CENTS = Decimal("0.01")


def to_cents(amount: Decimal) -> Decimal:
    """Round a money amount to whole cents (half up)."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Tier:
    """Hourly PAYG tier."""
    id: str
    name: str
    base_rate_per_hour: Decimal
    translation_limit: int  # Target languages included
    total_language_limit: int  # Source + targets
    overage_rate_per_hour: Decimal  # Per extra language per hour
    features: Tuple[str, ...] = ()
    ideal_for: Tuple[str, ...] = ()
    description: str = ""
    recommended: bool = False
    badge: Optional[str] = None


@dataclass(frozen=True)
class FreeTierLimits:
    """Daily free allowance."""
    daily_minutes: int = 15
    translation_limit: int = 2
    total_language_limit: int = 3
    reset_schedule: str = "daily"


@dataclass(frozen=True)
class CurrencySettings:
    """Currency and unit words used by the formatting helpers."""
    code: str = "USD"
    symbol: str = "$"
    per_hour_suffix: str = "/hr"
    language_unit: str = "language"
    language_unit_plural: str = "languages"
    translation_unit: str = "translation"
    translation_unit_plural: str = "translations"


@dataclass(frozen=True)
class PricingCatalog:
    """Immutable pricing configuration injected into the engine.

    Changing prices means building a new catalog and a new engine; nothing
    mutates a catalog in place.
    """
    tiers: Dict[str, Tier]
    free_tier: FreeTierLimits = field(default_factory=FreeTierLimits)
    scaling: ParticipantScaling = DEFAULT_SCALING
    currency: CurrencySettings = field(default_factory=CurrencySettings)
    version: str = "1.0.0"

    def get_tier(self, tier_id: str) -> Tier:
        """Get a PAYG tier by id.

        Args:
            tier_id: Tier identifier

        Returns:
            The matching Tier

        Raises:
            ConfigError: If the tier id is unknown
        """
        if tier_id not in self.tiers:
            raise ConfigError(f"Unknown tier: {tier_id}")
        return self.tiers[tier_id]

    def get_free_tier_limits(self) -> FreeTierLimits:
        return self.free_tier

    def all_tiers(self) -> List[Tier]:
        return list(self.tiers.values())

    def recommended_tier(self) -> Optional[Tier]:
        """First tier flagged as recommended, if any."""
        for tier in self.tiers.values():
            if tier.recommended:
                return tier
        return None

    def validate(self) -> List[str]:
        """Collect configuration problems instead of failing on the first one."""
        errors = []
        if self.free_tier.daily_minutes <= 0:
            errors.append("Free tier daily minutes must be positive")
        if self.free_tier.translation_limit < 0:
            errors.append("Free tier translation limit cannot be negative")
        for key, tier in self.tiers.items():
            if tier.id != key:
                errors.append(f"{key} tier id does not match its key ({tier.id})")
            if tier.base_rate_per_hour <= 0:
                errors.append(f"{key} tier base rate must be positive")
            if tier.overage_rate_per_hour < 0:
                errors.append(f"{key} tier overage rate cannot be negative")
            if tier.translation_limit < 0:
                errors.append(f"{key} tier translation limit cannot be negative")
        return errors

    # Formatting

    def format_currency(self, amount) -> str:
        """Format an amount as ``$1,234.50``."""
        value = to_cents(Decimal(str(amount)))
        sign = "-" if value < 0 else ""
        return f"{sign}{self.currency.symbol}{abs(value):,.2f}"

    def format_rate(self, amount) -> str:
        """Format an hourly rate as ``$45.00/hr``."""
        return f"{self.format_currency(amount)}{self.currency.per_hour_suffix}"

    def format_language_count(self, count: int, kind: str = "language") -> str:
        """Format a count with singular or plural unit words."""
        if kind == "translation":
            unit = self.currency.translation_unit if count == 1 else self.currency.translation_unit_plural
        else:
            unit = self.currency.language_unit if count == 1 else self.currency.language_unit_plural
        return f"{count} {unit}"

    def format_language_limits(self, translations: int, total_languages: int) -> str:
        """Format limits as ``5 translations (6 total languages)``."""
        translation_text = self.format_language_count(translations, "translation")
        total_unit = (
            self.currency.language_unit if total_languages == 1
            else self.currency.language_unit_plural
        )
        return f"{translation_text} ({total_languages} total {total_unit})"

    # Quoting

    def calculate_session_cost(
        self,
        tier_id: str,
        duration_hours,
        participant_count: int,
        overage_languages: int = 0,
        overage_hours=0
    ) -> Decimal:
        """Quote the cost of a PAYG session.

        Args:
            tier_id: Tier identifier
            duration_hours: Session length in hours
            participant_count: Participants used for the multiplier
            overage_languages: Number of extra languages
            overage_hours: Hours each extra language was active

        Returns:
            Total cost rounded to cents

        Raises:
            ConfigError: If the tier id is unknown
        """
        tier = self.get_tier(tier_id)
        multiplier = compute_multiplier(participant_count, self.scaling).multiplier

        # Base cost: rate * hours * multiplier
        base_cost = tier.base_rate_per_hour * Decimal(str(duration_hours)) * multiplier

        # Overage cost: languages * hours * overage rate * multiplier
        overage_cost = (
            Decimal(overage_languages) * Decimal(str(overage_hours))
            * tier.overage_rate_per_hour * multiplier
        )
        return to_cents(base_cost + overage_cost)

    def get_upgrade_threshold(
        self,
        from_tier: str,
        to_tier: str,
        participant_count: int = 100
    ) -> float:
        """Hours of overage on ``from_tier`` that cost as much as upgrading.

        Returns ``inf`` when the source tier charges no overage.
        """
        source = self.get_tier(from_tier)
        target = self.get_tier(to_tier)
        multiplier = compute_multiplier(participant_count, self.scaling).multiplier

        rate_difference = (target.base_rate_per_hour - source.base_rate_per_hour) * multiplier
        overage = source.overage_rate_per_hour * multiplier
        if overage <= 0:
            return float("inf")
        return float(rate_difference / overage)


def format_duration(hours: float) -> str:
    """Format hours as ``1 hr 30 min``, ``45 min`` or ``2 hr``."""
    whole_hours = int(hours)
    minutes = int(round((hours - whole_hours) * 60))
    if minutes == 60:
        whole_hours, minutes = whole_hours + 1, 0

    if whole_hours == 0:
        return f"{minutes} min"
    if minutes == 0:
        return f"{whole_hours} hr"
    return f"{whole_hours} hr {minutes} min"


# Production rate table
DEFAULT_CATALOG = PricingCatalog(
    tiers={
        "starter": Tier(
            id="starter",
            name="Starter",
            base_rate_per_hour=Decimal("45"),
            translation_limit=1,
            total_language_limit=2,
            overage_rate_per_hour=Decimal("10"),
            features=(
                "1 translation (2 total languages)",
                "Same price for up to 100 participants (then +25% per 100 more)",
                "Overage: $10/hr per extra language",
                "Meeting recording",
                "PDF transcript export",
                "Email support",
            ),
            ideal_for=("Small meetings", "Single language pair", "Occasional use"),
            description="Perfect for small teams with basic translation needs"
        ),
        "professional": Tier(
            id="professional",
            name="Professional",
            base_rate_per_hour=Decimal("75"),
            translation_limit=5,
            total_language_limit=6,
            overage_rate_per_hour=Decimal("8"),
            features=(
                "5 translations (6 total languages)",
                "Same price for up to 100 participants (then +25% per 100 more)",
                "Overage: $8/hr per extra language",
                "Meeting recording",
                "PDF transcript export",
                "Glossary support",
                "Template support",
                "Priority email + chat support",
            ),
            ideal_for=("Regular use", "Multiple languages", "Weekly meetings"),
            description="Ideal for growing businesses with regular translation needs",
            recommended=True,
            badge="MOST POPULAR"
        ),
        "enterprise": Tier(
            id="enterprise",
            name="Enterprise",
            base_rate_per_hour=Decimal("105"),
            translation_limit=15,
            total_language_limit=16,
            overage_rate_per_hour=Decimal("6"),
            features=(
                "15 translations (16 total languages)",
                "Same price for up to 100 participants (then +25% per 100 more)",
                "Overage: $6/hr per extra language",
                "ALL 50+ languages available",
                "Meeting recording",
                "PDF transcript export",
                "Glossary support",
                "Template support",
                "Custom meeting types",
                "Priority support",
                "Dedicated account manager",
            ),
            ideal_for=("Large events", "Many languages", "Enterprise organizations"),
            description="Complete solution for large organizations with global communication needs"
        ),
    }
)
