"""
Core Values Kernel: Shared Types

Data classes used across the command model, reducer, validator and engine.
These are the contracts that bind the kernel together.

Key points:
- Categories always carry all five names, empty lists by default
- A round stores the dealt pool (post-shuffle) so it can be replayed alone
- Values are matched by id everywhere; titles are display-only
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Category names
# ---------------------------------------------------------------------------

VERY_IMPORTANT = "Very Important"
QUITE_IMPORTANT = "Quite Important"
IMPORTANT = "Important"
OF_SOME_IMPORTANCE = "Of Some Importance"
NOT_IMPORTANT = "Not Important"

# Priority order, highest first. Tie-breaking and early finish depend on it.
CATEGORY_ORDER: tuple[str, ...] = (
    VERY_IMPORTANT,
    QUITE_IMPORTANT,
    IMPORTANT,
    OF_SOME_IMPORTANCE,
    NOT_IMPORTANT,
)

CATEGORY_NAMES: set[str] = set(CATEGORY_ORDER)

# Every category except the discard pile
ACTIVE_CATEGORIES: tuple[str, ...] = CATEGORY_ORDER[:-1]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Value:
    """One card. Immutable; the pool for a session is fixed at start."""

    id: str
    title: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "description": self.description}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Value:
        return cls(id=d["id"], title=d["title"], description=d.get("description", ""))


@dataclass(frozen=True)
class ValueWithReason:
    """A final value plus the user's free-text reason for keeping it."""

    value: Value
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = self.value.to_dict()
        if self.reason is not None:
            d["reason"] = self.reason
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ValueWithReason:
        return cls(value=Value.from_dict(d), reason=d.get("reason"))


@dataclass
class CategoryState:
    """
    The in-memory sorting state of one round.

    categories: all five names, each an ordered list (the user's ranking)
    remaining: cards dealt this round that are not placed yet
    valid_categories: categories that accept new cards this round
    """

    categories: dict[str, list[Value]] = field(default_factory=lambda: empty_categories())
    remaining: list[Value] = field(default_factory=list)
    valid_categories: tuple[str, ...] = CATEGORY_ORDER

    def copy(self) -> CategoryState:
        return CategoryState(
            categories=copy_categories(self.categories),
            remaining=list(self.remaining),
            valid_categories=tuple(self.valid_categories),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": categories_to_dict(self.categories),
            "remaining": [v.to_dict() for v in self.remaining],
            "valid_categories": list(self.valid_categories),
        }


@dataclass
class Round:
    """
    One sorting pass over the active pool.
    The command log is append-only while the round is current and frozen after.
    """

    session_id: str
    round_number: int
    commands: list[Any] = field(default_factory=list)  # list[Command]
    available_categories: dict[str, list[Value]] = field(default_factory=lambda: empty_categories())
    valid_categories: tuple[str, ...] = CATEGORY_ORDER
    initial_pool: list[Value] = field(default_factory=list)
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "roundNumber": self.round_number,
            "commands": [c.to_dict() for c in self.commands],
            "availableCategories": categories_to_dict(self.available_categories),
            "validCategories": list(self.valid_categories),
            "initialPool": [v.to_dict() for v in self.initial_pool],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Round:
        from corevalues.kernel.commands import command_from_dict

        return cls(
            session_id=d["sessionId"],
            round_number=d["roundNumber"],
            commands=[command_from_dict(c) for c in d.get("commands", [])],
            available_categories=categories_from_dict(d.get("availableCategories", {})),
            valid_categories=tuple(d.get("validCategories", CATEGORY_ORDER)),
            initial_pool=[Value.from_dict(v) for v in d.get("initialPool", [])],
            timestamp=d.get("timestamp", ""),
        )


@dataclass
class Session:
    """
    A sorting exercise from start to completion.

    remaining_values is the current round's dealt pool, in dealt order.
    final_values is filled when the session reaches the reasoning step.
    """

    id: str
    timestamp: str
    target_core_values: int
    current_round: int = 1
    completed: bool = False
    initial_values: list[Value] = field(default_factory=list)
    remaining_values: list[Value] = field(default_factory=list)
    final_values: list[Value] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "targetCoreValues": self.target_core_values,
            "currentRound": self.current_round,
            "completed": self.completed,
            "initialValues": [v.to_dict() for v in self.initial_values],
            "remainingValues": [v.to_dict() for v in self.remaining_values],
            "finalValues": [v.to_dict() for v in self.final_values],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Session:
        return cls(
            id=d["id"],
            timestamp=d["timestamp"],
            target_core_values=d["targetCoreValues"],
            current_round=d.get("currentRound", 1),
            completed=d.get("completed", False),
            initial_values=[Value.from_dict(v) for v in d.get("initialValues", [])],
            remaining_values=[Value.from_dict(v) for v in d.get("remainingValues", [])],
            final_values=[Value.from_dict(v) for v in d.get("finalValues", [])],
        )


@dataclass
class CompletedSession:
    """Written once, when the user finishes giving reasons."""

    session_id: str
    final_values: list[ValueWithReason]
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "finalValues": [v.to_dict() for v in self.final_values],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CompletedSession:
        return cls(
            session_id=d["sessionId"],
            final_values=[ValueWithReason.from_dict(v) for v in d.get("finalValues", [])],
            timestamp=d["timestamp"],
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def empty_categories() -> dict[str, list[Value]]:
    """All five categories, each empty, in priority order."""
    return {name: [] for name in CATEGORY_ORDER}


def copy_categories(categories: dict[str, list[Value]]) -> dict[str, list[Value]]:
    """New dict with new lists. Values are frozen so they are shared."""
    result = empty_categories()
    for name, cards in categories.items():
        result[name] = list(cards)
    return result


def categories_to_dict(categories: dict[str, list[Value]]) -> dict[str, list[dict[str, Any]]]:
    return {name: [v.to_dict() for v in categories.get(name, [])] for name in CATEGORY_ORDER}


def categories_from_dict(d: dict[str, Any]) -> dict[str, list[Value]]:
    """Missing names become empty lists; unknown names are dropped."""
    result = empty_categories()
    for name in CATEGORY_ORDER:
        result[name] = [Value.from_dict(v) for v in d.get(name) or []]
    return result


def category_ids(categories: dict[str, list[Value]]) -> dict[str, list[str]]:
    """Card ids per category. Handy for comparisons and test assertions."""
    return {name: [v.id for v in categories.get(name, [])] for name in CATEGORY_ORDER}


def now_iso() -> str:
    """Current UTC time as ISO 8601 string with milliseconds."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
