"""
Core Values Kernel: Reducer / Replay Engine

Pure function: (state, command) -> ApplyResult
No side effects. No IO. Deterministic.

Given the same starting layout and the same ordered log, produces the same
categories every time. Commands are applied strictly in log order: move
indices are positional, so reordering the log changes the result.

Replay only ever runs inside one round. Each round persists its dealt pool,
so the shuffle between rounds never has to be reproduced.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from corevalues.kernel.commands import Command, DropCommand, MoveCommand
from corevalues.kernel.types import (
    CATEGORY_NAMES,
    CategoryState,
    Round,
    Session,
    Value,
    category_ids,
    copy_categories,
    empty_categories,
)

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """
    Result of applying one command to a state.
    The reducer never throws; it always returns one of these.
    """

    state: CategoryState
    applied: bool
    error: str | None = None


@dataclass
class ReplayStep:
    """One frame of a step-by-step playback."""

    index: int
    command: Command
    state: CategoryState
    applied: bool
    error: str | None = None


@dataclass
class ReconstructedSession:
    """What a history view needs to show a whole session."""

    categories_per_round: dict[int, dict[str, list[Value]]] = field(default_factory=dict)
    remaining_cards: list[Value] = field(default_factory=list)
    current_round: int = 0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def apply_command(state: CategoryState, command: Command) -> ApplyResult:
    """
    Apply one command to a state.

    The input state is never modified. On rejection the original state is
    returned with applied=False and an error code.
    """
    if isinstance(command, DropCommand):
        return _apply_drop(state, command)
    if isinstance(command, MoveCommand):
        return _apply_move(state, command)
    return _reject(state, "UNKNOWN_COMMAND", f"{type(command).__name__}")


def initial_round_state(round_: Round) -> CategoryState:
    """The layout a round starts from: nothing placed, the whole pool unsorted."""
    return CategoryState(
        categories=empty_categories(),
        remaining=list(round_.initial_pool),
        valid_categories=tuple(round_.valid_categories),
    )


def replay(state: CategoryState, commands: Sequence[Command]) -> CategoryState:
    """
    Fold a log over a starting state.
    replay(s, [c1, c2]) == apply(apply(s, c1).state, c2).state
    """
    for i, command in enumerate(commands):
        result = apply_command(state, command)
        if result.applied:
            state = result.state
        else:
            logger.warning("replay: skipped command %d (%s): %s", i, command.type, result.error)
    return state


def replay_round(round_: Round) -> CategoryState:
    """Rebuild a round's state from its dealt pool and its log."""
    return replay(initial_round_state(round_), round_.commands)


def replay_steps(round_: Round) -> Iterator[ReplayStep]:
    """
    Yield the state after each command, for visual playback.
    Rejected commands still produce a step (with the unchanged state).
    """
    state = initial_round_state(round_)
    for i, command in enumerate(round_.commands):
        result = apply_command(state, command)
        state = result.state
        yield ReplayStep(
            index=i,
            command=command,
            state=state.copy(),
            applied=result.applied,
            error=result.error,
        )


def reconstruct(rounds: Sequence[Round]) -> ReconstructedSession:
    """
    Replay every round of a session independently.
    remaining_cards are the unsorted cards of the latest round.
    """
    reconstructed = ReconstructedSession()
    for round_ in sorted(rounds, key=lambda r: r.round_number):
        state = replay_round(round_)
        reconstructed.categories_per_round[round_.round_number] = state.categories
        reconstructed.remaining_cards = state.remaining
        reconstructed.current_round = round_.round_number
    return reconstructed


def resume(session: Session, current_round: Round) -> CategoryState:
    """
    Rebuild the in-memory state on reload.

    The snapshot is the fast path. It is checked against a replay of the log,
    and the replayed state wins when they disagree.
    """
    pool = current_round.initial_pool or session.remaining_values
    categories = copy_categories(current_round.available_categories)
    placed = {v.id for cards in categories.values() for v in cards}
    state = CategoryState(
        categories=categories,
        remaining=[v for v in pool if v.id not in placed],
        valid_categories=tuple(current_round.valid_categories),
    )

    if not current_round.initial_pool:
        return state

    replayed = replay_round(current_round)
    if category_ids(replayed.categories) != category_ids(state.categories):
        logger.warning(
            "resume: snapshot for session %s round %d does not match its log, using replay",
            session.id,
            current_round.round_number,
        )
        return replayed
    return state


def check_partition(state: CategoryState) -> list[str]:
    """Every card id may appear once, across all categories and the unsorted pool."""
    counts = Counter(v.id for cards in state.categories.values() for v in cards)
    counts.update(v.id for v in state.remaining)
    return [f"DUPLICATE_CARD: {card_id} appears {n} times" for card_id, n in sorted(counts.items()) if n > 1]


def integrity_check(round_: Round) -> tuple[bool, list[str]]:
    """Verify a round's snapshot matches its log replay and holds each card once."""
    problems: list[str] = []
    replayed = replay_round(round_)

    if category_ids(replayed.categories) != category_ids(round_.available_categories):
        problems.append("Snapshot does not match command replay")

    snapshot_state = CategoryState(categories=round_.available_categories, remaining=[])
    problems.extend(check_partition(snapshot_state))
    problems.extend(check_partition(replayed))

    pool_ids = {v.id for v in round_.initial_pool}
    if pool_ids:
        stray = [v.id for cards in round_.available_categories.values() for v in cards if v.id not in pool_ids]
        problems.extend(f"UNKNOWN_CARD: {card_id} not dealt this round" for card_id in stray)

    return not problems, problems


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _reject(state: CategoryState, code: str, msg: str) -> ApplyResult:
    return ApplyResult(state=state, applied=False, error=f"{code}: {msg}")


def _ok(state: CategoryState) -> ApplyResult:
    return ApplyResult(state=state, applied=True)


def _index_of(cards: list[Value], card_id: str) -> int:
    for i, card in enumerate(cards):
        if card.id == card_id:
            return i
    return -1


def _apply_drop(state: CategoryState, command: DropCommand) -> ApplyResult:
    if command.category not in CATEGORY_NAMES:
        return _reject(state, "UNKNOWN_CATEGORY", command.category)

    pos = _index_of(state.remaining, command.card_id)
    if pos < 0:
        return _reject(state, "NOT_FOUND", f"card {command.card_id} is not unsorted")

    new = state.copy()
    card = new.remaining.pop(pos)
    new.categories[command.category].append(card)
    return _ok(new)


def _apply_move(state: CategoryState, command: MoveCommand) -> ApplyResult:
    for name in (command.from_category, command.to_category):
        if name not in CATEGORY_NAMES:
            return _reject(state, "UNKNOWN_CATEGORY", name)

    if command.is_reorder:
        return _apply_reorder(state, command)

    source = state.categories[command.from_category]
    pos = _index_of(source, command.card_id)
    if pos < 0:
        return _reject(state, "NOT_FOUND", f"card {command.card_id} not in {command.from_category}")

    target_len = len(state.categories[command.to_category])
    if command.to_index is not None and not 0 <= command.to_index <= target_len:
        return _reject(state, "BAD_INDEX", f"toIndex {command.to_index} outside 0..{target_len}")

    new = state.copy()
    card = new.categories[command.from_category].pop(pos)
    if command.to_index is None:
        new.categories[command.to_category].append(card)
    else:
        new.categories[command.to_category].insert(command.to_index, card)
    return _ok(new)


def _apply_reorder(state: CategoryState, command: MoveCommand) -> ApplyResult:
    cards = state.categories[command.from_category]
    if command.from_index is None or command.to_index is None:
        return _reject(state, "BAD_INDEX", "reorder needs fromIndex and toIndex")
    if not 0 <= command.from_index < len(cards):
        return _reject(state, "BAD_INDEX", f"fromIndex {command.from_index} outside 0..{len(cards) - 1}")
    if not 0 <= command.to_index < len(cards):
        return _reject(state, "BAD_INDEX", f"toIndex {command.to_index} outside 0..{len(cards) - 1}")
    if command.from_index == command.to_index:
        return _reject(state, "NOOP", "fromIndex equals toIndex")
    if cards[command.from_index].id != command.card_id:
        return _reject(
            state,
            "POSITION_MISMATCH",
            f"card at {command.from_index} is {cards[command.from_index].id}, not {command.card_id}",
        )

    new = state.copy()
    reordered = new.categories[command.from_category]
    card = reordered.pop(command.from_index)
    reordered.insert(command.to_index, card)
    return _ok(new)
