"""
Core Values Kernel: Round Validator

Pure predicates over (categories, remaining, target). The engine uses them to
gate round transitions; callers use the blockers and status message to
explain why "Next Round" is disabled.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from corevalues.kernel.types import NOT_IMPORTANT, VERY_IMPORTANT, Value

# Reasons a round cannot advance
CARDS_REMAINING = "cards_remaining"
NO_DISCARD = "no_discard"
NOT_ENOUGH_ACTIVE = "not_enough_active"


@dataclass(frozen=True)
class RoundStatus:
    """Every health flag for the current round, computed in one pass."""

    target_core_values: int
    active_count: int
    total_active: int
    remaining_count: int
    very_important_count: int
    not_important_count: int
    has_enough_cards: bool
    has_minimum_discard: bool
    is_nearing_completion: bool
    can_advance: bool
    should_end_game: bool
    has_too_many_important: bool
    has_not_enough_important: bool
    has_found_core_values: bool


@dataclass(frozen=True)
class StatusMessage:
    text: str
    kind: Literal["info", "warning", "success"]
    is_end_game: bool = False


def active_count(categories: dict[str, list[Value]]) -> int:
    """Cards placed anywhere except Not Important."""
    return sum(len(cards) for name, cards in categories.items() if name != NOT_IMPORTANT)


def total_active(categories: dict[str, list[Value]], remaining: Sequence[Value]) -> int:
    return active_count(categories) + len(remaining)


def has_enough_cards(categories: dict[str, list[Value]], remaining: Sequence[Value], target: int) -> bool:
    return total_active(categories, remaining) >= target


def has_minimum_discard(
    categories: dict[str, list[Value]],
    remaining: Sequence[Value],
    target: int,
    min_discard: int = 1,
) -> bool:
    """
    At least one card must be rejected each round, unless the pool is already
    down to the target and it all sits in Very Important.
    """
    already_placed = (
        total_active(categories, remaining) == target and len(categories.get(VERY_IMPORTANT, [])) == target
    )
    return already_placed or len(categories.get(NOT_IMPORTANT, [])) >= min_discard


def is_nearing_completion(valid_categories: Sequence[str]) -> bool:
    """Only the binary keep/discard choice is left."""
    return len(valid_categories) == 2


def can_advance(
    categories: dict[str, list[Value]],
    remaining: Sequence[Value],
    target: int,
    min_discard: int = 1,
) -> bool:
    return (
        not remaining
        and has_minimum_discard(categories, remaining, target, min_discard)
        and active_count(categories) >= target
    )


def should_end_game(categories: dict[str, list[Value]], remaining: Sequence[Value], target: int) -> bool:
    return len(categories.get(VERY_IMPORTANT, [])) == target and not remaining


def evaluate_round(
    categories: dict[str, list[Value]],
    remaining: Sequence[Value],
    target: int,
    valid_categories: Sequence[str],
    *,
    min_discard: int = 1,
) -> RoundStatus:
    very = len(categories.get(VERY_IMPORTANT, []))
    nearing = is_nearing_completion(valid_categories)
    return RoundStatus(
        target_core_values=target,
        active_count=active_count(categories),
        total_active=total_active(categories, remaining),
        remaining_count=len(remaining),
        very_important_count=very,
        not_important_count=len(categories.get(NOT_IMPORTANT, [])),
        has_enough_cards=has_enough_cards(categories, remaining, target),
        has_minimum_discard=has_minimum_discard(categories, remaining, target, min_discard),
        is_nearing_completion=nearing,
        can_advance=can_advance(categories, remaining, target, min_discard),
        should_end_game=should_end_game(categories, remaining, target),
        has_too_many_important=nearing and very > target,
        has_not_enough_important=nearing and very < target,
        has_found_core_values=any(
            len(cards) == target for name, cards in categories.items() if name != NOT_IMPORTANT
        ),
    )


def advance_blockers(status: RoundStatus) -> list[str]:
    """Why the round cannot advance, in the order the user should fix them."""
    reasons: list[str] = []
    if status.remaining_count:
        reasons.append(CARDS_REMAINING)
    if not status.has_minimum_discard:
        reasons.append(NO_DISCARD)
    if status.active_count < status.target_core_values:
        reasons.append(NOT_ENOUGH_ACTIVE)
    return reasons


def status_message(status: RoundStatus) -> StatusMessage:
    """The one-line status shown above the board."""
    if status.remaining_count:
        noun = "value" if status.remaining_count == 1 else "values"
        count = "" if status.remaining_count == 1 else f" {status.remaining_count}"
        return StatusMessage(f"Place the remaining{count} {noun} in a category", "info")
    if not status.has_minimum_discard:
        return StatusMessage(
            "You need to place at least one value in Not Important before you can continue",
            "warning",
        )
    if status.active_count < status.target_core_values:
        return StatusMessage(
            f"You need at least {status.target_core_values} values outside of Not Important to continue",
            "warning",
        )
    if status.very_important_count == status.target_core_values:
        return StatusMessage("Perfect! End the game to complete the exercise.", "success", is_end_game=True)
    return StatusMessage("You can continue to the next round or keep refining your choices", "info")
