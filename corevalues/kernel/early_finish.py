"""
Core Values Kernel: Early Finish

Short-circuits the remaining rounds. Walk the categories top to bottom,
filling `target` promote slots; everything that does not fit is demoted.
The engine then issues one Move per card (promotions first), persisting after
each, so an interrupted finish resumes from a consistent log.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from corevalues.kernel.types import CATEGORY_ORDER, NOT_IMPORTANT, VERY_IMPORTANT, Value


@dataclass
class EarlyFinishPlan:
    """Cards to move, each paired with the category it currently sits in."""

    promote: list[tuple[Value, str]] = field(default_factory=list)
    demote: list[tuple[Value, str]] = field(default_factory=list)

    @property
    def moves(self) -> list[tuple[Value, str, str]]:
        """(card, from, to) for every card that actually changes category."""
        result = [(card, src, VERY_IMPORTANT) for card, src in self.promote if src != VERY_IMPORTANT]
        result.extend((card, src, NOT_IMPORTANT) for card, src in self.demote if src != NOT_IMPORTANT)
        return result


def plan_early_finish(categories: dict[str, list[Value]], target: int) -> EarlyFinishPlan:
    """
    Keep Very Important as-is up to the target, then fill the remaining
    slots from each lower category in priority order and within-category rank.

    If Very Important already holds more than the target, its lowest-ranked
    overflow is demoted too, so the result is exact.
    """
    plan = EarlyFinishPlan()
    for name in CATEGORY_ORDER:
        cards = categories.get(name, [])
        space = max(target - len(plan.promote), 0)
        plan.promote.extend((card, name) for card in cards[:space])
        plan.demote.extend((card, name) for card in cards[space:])
    return plan
