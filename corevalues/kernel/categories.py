"""
Core Values Kernel: Category State Container

Transactional operations over a CategoryState. Each one checks the caller's
request, builds the Command that describes it, and applies that Command
through the reducer. Live mutation and replay therefore share one code path.

Operations never persist. A successful operation yields exactly one Command
that the caller appends to the round's log and stores. Requests that cannot
be honoured return the unchanged state and no Command.
"""

from __future__ import annotations

from dataclasses import dataclass

from corevalues.kernel.commands import Command, make_drop, make_move
from corevalues.kernel.reducer import apply_command
from corevalues.kernel.types import CATEGORY_NAMES, CategoryState, Value


@dataclass
class Mutation:
    """New state plus the command that produced it (None when nothing changed)."""

    state: CategoryState
    command: Command | None = None

    @property
    def changed(self) -> bool:
        return self.command is not None


def is_selectable(state: CategoryState, category: str) -> bool:
    """Valid this round, or still holding cards (so they can be moved out)."""
    if category not in CATEGORY_NAMES:
        return False
    return category in state.valid_categories or bool(state.categories[category])


def visible_categories(state: CategoryState) -> list[str]:
    """Valid categories plus any non-empty leftovers, in priority order."""
    return [name for name in state.categories if is_selectable(state, name)]


def find_card(state: CategoryState, card_id: str) -> tuple[str | None, Value | None]:
    """Locate a card: (category, value), ("remaining", value), or (None, None)."""
    for name, cards in state.categories.items():
        for card in cards:
            if card.id == card_id:
                return name, card
    for card in state.remaining:
        if card.id == card_id:
            return "remaining", card
    return None, None


def drop(state: CategoryState, value: Value, target_category: str) -> Mutation:
    """Move an unsorted card to the end of a valid category."""
    if target_category not in state.valid_categories:
        return Mutation(state)
    if not any(card.id == value.id for card in state.remaining):
        return Mutation(state)

    return _commit(state, make_drop(value, target_category))


def move_within_category(state: CategoryState, category: str, from_index: int, to_index: int) -> Mutation:
    """Reorder inside one category: remove at from_index, insert at to_index."""
    if not is_selectable(state, category) or from_index == to_index:
        return Mutation(state)

    cards = state.categories[category]
    if not 0 <= from_index < len(cards) or not 0 <= to_index < len(cards):
        return Mutation(state)

    return _commit(state, make_move(cards[from_index], category, category, from_index, to_index))


def move_between_categories(state: CategoryState, value: Value, from_category: str, to_category: str) -> Mutation:
    """Move a placed card to the end of another category."""
    if from_category == to_category:
        return Mutation(state)
    if not is_selectable(state, from_category) or not is_selectable(state, to_category):
        return Mutation(state)
    if not any(card.id == value.id for card in state.categories[from_category]):
        return Mutation(state)

    return _commit(state, make_move(value, from_category, to_category))


def _commit(state: CategoryState, command: Command) -> Mutation:
    result = apply_command(state, command)
    if not result.applied:
        return Mutation(state)
    return Mutation(result.state, command)
