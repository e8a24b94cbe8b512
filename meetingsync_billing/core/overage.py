"""
Overage language ledger.

Tracks languages added beyond a tier's included limit. Each entry keeps its
own open/closed interval in session minutes and the rate that applied when it
was added.

Projection (``total_cost``) is read-only and called every tick; closing
(``remove_language`` / ``close_all_open``) mutates and happens once per entry.
Closed entries keep their cost after removal, so the ledger stays the record
of historical overage cost for the whole session.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Optional, Tuple

from .errors import DuplicateLanguage, LanguageNotFound
from .pricing import to_cents

MINUTES_PER_HOUR = Decimal("60")


@dataclass(frozen=True)
class OverageLanguage:
    """One overage interval for a language."""
    language_code: str
    added_at_minutes: Decimal
    overage_rate_per_hour: Decimal  # Snapshotted at add time
    removed_at_minutes: Optional[Decimal] = None
    calculated_cost: Decimal = Decimal("0.00")

    @property
    def is_open(self) -> bool:
        return self.removed_at_minutes is None

    def cost_until(self, at_minutes: Decimal, multiplier: Decimal) -> Decimal:
        """Cost of the interval ending at ``at_minutes`` (or the removal time)."""
        end = self.removed_at_minutes if self.removed_at_minutes is not None else at_minutes
        hours_active = (end - self.added_at_minutes) / MINUTES_PER_HOUR
        return to_cents(hours_active * self.overage_rate_per_hour * multiplier)


class OverageLedger:
    """Per-session record of overage languages."""

    def __init__(self):
        self._entries: List[OverageLanguage] = []

    @property
    def entries(self) -> Tuple[OverageLanguage, ...]:
        return tuple(self._entries)

    def open_codes(self) -> List[str]:
        return [entry.language_code for entry in self._entries if entry.is_open]

    def is_open(self, language_code: str) -> bool:
        return self._find_open(language_code) is not None

    def add_language(
        self,
        language_code: str,
        added_at_minutes: Decimal,
        rate_per_hour: Decimal
    ) -> OverageLanguage:
        """Open a new overage interval.

        Args:
            language_code: Language being added
            added_at_minutes: Session minute at which it was added
            rate_per_hour: Overage rate in effect now

        Returns:
            The new open entry

        Raises:
            DuplicateLanguage: If the language already has an open entry
        """
        if self._find_open(language_code) is not None:
            raise DuplicateLanguage(language_code)

        entry = OverageLanguage(
            language_code=language_code,
            added_at_minutes=Decimal(added_at_minutes),
            overage_rate_per_hour=Decimal(rate_per_hour)
        )
        self._entries.append(entry)
        return entry

    def remove_language(
        self,
        language_code: str,
        at_minutes: Decimal,
        multiplier: Decimal = Decimal("1")
    ) -> OverageLanguage:
        """Close the open interval for a language and freeze its cost.

        Raises:
            LanguageNotFound: If the language has no open entry
            ValueError: If ``at_minutes`` precedes the time it was added
        """
        index = self._find_open(language_code)
        if index is None:
            raise LanguageNotFound(language_code)
        return self._close(index, Decimal(at_minutes), multiplier)

    def close_all_open(self, at_minutes: Decimal, multiplier: Decimal) -> List[OverageLanguage]:
        """Close every open entry at session end."""
        closed = []
        for index, entry in enumerate(self._entries):
            if entry.is_open:
                closed.append(self._close(index, Decimal(at_minutes), multiplier))
        return closed

    def total_cost(self, at_minutes: Decimal, multiplier: Decimal) -> Decimal:
        """Closed costs plus open entries valued as if closed at ``at_minutes``.

        Does not mutate any entry.
        """
        total = Decimal("0.00")
        for entry in self._entries:
            if entry.is_open:
                total += entry.cost_until(Decimal(at_minutes), multiplier)
            else:
                total += entry.calculated_cost
        return to_cents(total)

    def _find_open(self, language_code: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.language_code == language_code and entry.is_open:
                return index
        return None

    def _close(self, index: int, at_minutes: Decimal, multiplier: Decimal) -> OverageLanguage:
        entry = self._entries[index]
        if at_minutes < entry.added_at_minutes:
            raise ValueError(
                f"Cannot close {entry.language_code} at minute {at_minutes}: "
                f"added at minute {entry.added_at_minutes}"
            )
        closed = replace(entry, removed_at_minutes=at_minutes)
        closed = replace(closed, calculated_cost=closed.cost_until(at_minutes, multiplier))
        self._entries[index] = closed
        return closed
