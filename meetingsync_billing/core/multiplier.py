"""
Participant scaling.

Maps a participant count to the billing multiplier applied to hourly rates.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


@dataclass(frozen=True)
class ParticipantScaling:
    """Step rule: flat price up to the threshold, then +rate per bracket."""
    base_threshold: int = 100
    increment_size: int = 100
    multiplier_rate: Decimal = Decimal("0.25")
    max_multiplier: Optional[Decimal] = None

    def __post_init__(self):
        """Validate the scaling rule."""
        if self.base_threshold <= 0:
            raise ValueError("base_threshold must be > 0")
        if self.increment_size <= 0:
            raise ValueError("increment_size must be > 0")
        if self.multiplier_rate < 0:
            raise ValueError("multiplier_rate cannot be negative")
        if self.max_multiplier is not None and self.max_multiplier < 1:
            raise ValueError("max_multiplier must be >= 1")

    @property
    def formula(self) -> str:
        """Human-readable description of the rule."""
        return (
            f"1.0 + (CEILING((participants - {self.base_threshold}) / "
            f"{self.increment_size}) x {self.multiplier_rate})"
        )


DEFAULT_SCALING = ParticipantScaling()


@dataclass(frozen=True)
class ParticipantMultiplier:
    """Derived multiplier for one participant count. Never persisted."""
    participant_count: int
    multiplier: Decimal
    base_threshold: int
    increment_size: int
    increment_rate: Decimal


def compute_multiplier(
    participant_count: int,
    scaling: ParticipantScaling = DEFAULT_SCALING
) -> ParticipantMultiplier:
    """Compute the billing multiplier for a participant count.

    The rule is a step function. A count exactly at the threshold stays at
    1.0; every started bracket above it adds ``multiplier_rate``.

    Args:
        participant_count: Current participant count (callers reject negatives)
        scaling: Scaling rule to apply

    Returns:
        ParticipantMultiplier with the multiplier rounded to 2 decimal places
    """
    multiplier = Decimal("1.00")
    if participant_count > scaling.base_threshold:
        over_base = participant_count - scaling.base_threshold
        # ceil without floats
        increments = -(-over_base // scaling.increment_size)
        multiplier = Decimal("1.0") + increments * scaling.multiplier_rate
        if scaling.max_multiplier is not None:
            multiplier = min(multiplier, scaling.max_multiplier)

    return ParticipantMultiplier(
        participant_count=participant_count,
        multiplier=multiplier.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        base_threshold=scaling.base_threshold,
        increment_size=scaling.increment_size,
        increment_rate=scaling.multiplier_rate
    )
