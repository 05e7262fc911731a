"""
Core Values Kernel: Command Model

Immutable records of one mutation each. A round's log is a list of these,
appended in the order the user acted. The reducer reads only `type` and the
payload; the timestamp is for display and ordering audits.

Payload keys stay camelCase so persisted logs keep one stable shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict

from corevalues.kernel.types import Value, now_iso


class DropPayload(TypedDict):
    cardId: str
    cardTitle: str
    category: str


class MovePayload(TypedDict, total=False):
    cardId: str
    cardTitle: str
    fromCategory: str
    toCategory: str
    fromIndex: int
    toIndex: int


@dataclass(frozen=True)
class DropCommand:
    """A card leaves the unsorted pool for a category."""

    card_id: str
    card_title: str
    category: str
    timestamp: str = field(default_factory=now_iso)

    type = "DROP"

    def get_payload(self) -> DropPayload:
        return {
            "cardId": self.card_id,
            "cardTitle": self.card_title,
            "category": self.category,
        }

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": dict(self.get_payload()), "timestamp": self.timestamp}


@dataclass(frozen=True)
class MoveCommand:
    """
    A card changes position.

    Same category with both indices set: a reorder. Different categories:
    indices are usually absent and the card goes to the end of the target.
    """

    card_id: str
    card_title: str
    from_category: str
    to_category: str
    from_index: int | None = None
    to_index: int | None = None
    timestamp: str = field(default_factory=now_iso)

    type = "MOVE"

    @property
    def is_reorder(self) -> bool:
        return self.from_category == self.to_category

    def get_payload(self) -> MovePayload:
        payload: MovePayload = {
            "cardId": self.card_id,
            "cardTitle": self.card_title,
            "fromCategory": self.from_category,
            "toCategory": self.to_category,
        }
        if self.from_index is not None:
            payload["fromIndex"] = self.from_index
        if self.to_index is not None:
            payload["toIndex"] = self.to_index
        return payload

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": dict(self.get_payload()), "timestamp": self.timestamp}


Command = DropCommand | MoveCommand


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_drop(value: Value, category: str, *, timestamp: str | None = None) -> DropCommand:
    return DropCommand(
        card_id=value.id,
        card_title=value.title,
        category=category,
        timestamp=timestamp or now_iso(),
    )


def make_move(
    value: Value,
    from_category: str,
    to_category: str,
    from_index: int | None = None,
    to_index: int | None = None,
    *,
    timestamp: str | None = None,
) -> MoveCommand:
    return MoveCommand(
        card_id=value.id,
        card_title=value.title,
        from_category=from_category,
        to_category=to_category,
        from_index=from_index,
        to_index=to_index,
        timestamp=timestamp or now_iso(),
    )


def command_from_dict(d: dict[str, Any]) -> Command:
    """Rebuild a command from its persisted form. Unknown types raise ValueError."""
    payload = d["payload"]
    ts = d.get("timestamp") or now_iso()

    if d["type"] == "DROP":
        return DropCommand(
            card_id=payload["cardId"],
            card_title=payload.get("cardTitle", ""),
            category=payload["category"],
            timestamp=ts,
        )
    if d["type"] == "MOVE":
        return MoveCommand(
            card_id=payload["cardId"],
            card_title=payload.get("cardTitle", ""),
            from_category=payload["fromCategory"],
            to_category=payload["toCategory"],
            from_index=payload.get("fromIndex"),
            to_index=payload.get("toIndex"),
            timestamp=ts,
        )
    raise ValueError(f"Unknown command type: {d['type']!r}")
