"""
The card catalog and dealing a session's pool from it.
"""

from __future__ import annotations

import json
import random
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from corevalues.kernel.types import Value

CATALOG_PATH = Path(__file__).parent / "data" / "values.json"


@lru_cache(maxsize=1)
def load_catalog(path: Path = CATALOG_PATH) -> tuple[Value, ...]:
    data = json.loads(path.read_text(encoding="utf-8"))
    return tuple(Value.from_dict(v) for v in data["values"])


def shuffled(values: Sequence[Value], rng: random.Random | None = None) -> list[Value]:
    """A new list in random order. Not reproducible; callers persist the result."""
    rng = rng or random.Random()
    return rng.sample(list(values), len(values))


def deal(values: Sequence[Value], max_cards: int, rng: random.Random | None = None) -> list[Value]:
    """Shuffle, then keep at most max_cards."""
    return shuffled(values, rng)[:max_cards]
