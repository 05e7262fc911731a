"""
Core Values Kernel: Category Scheduling

Which categories a round offers depends on how many active cards survive
relative to the target. Fewer categories as the pool shrinks forces the
user toward a keep/discard decision on every remaining card.

The set for a round is intersected with the previous round's set, so it
never grows back even if thresholds change between rounds.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from corevalues.config import settings
from corevalues.kernel.types import (
    CATEGORY_ORDER,
    IMPORTANT,
    NOT_IMPORTANT,
    QUITE_IMPORTANT,
    VERY_IMPORTANT,
)

# (active_count, target, previous_valid) -> valid categories in priority order.
# Every scheduler must offer Very Important and Not Important; early finish needs both.
CategoryScheduler = Callable[[int, int, Sequence[str] | None], tuple[str, ...]]

FINAL_CATEGORIES: tuple[str, ...] = (VERY_IMPORTANT, NOT_IMPORTANT)
REDUCED_CATEGORIES: tuple[str, ...] = (VERY_IMPORTANT, QUITE_IMPORTANT, NOT_IMPORTANT)
STANDARD_CATEGORIES: tuple[str, ...] = (VERY_IMPORTANT, QUITE_IMPORTANT, IMPORTANT, NOT_IMPORTANT)


def categories_for_ratio(
    ratio: float,
    *,
    final: float | None = None,
    reduced: float | None = None,
    standard: float | None = None,
) -> tuple[str, ...]:
    final = settings.RATIO_FINAL if final is None else final
    reduced = settings.RATIO_REDUCED if reduced is None else reduced
    standard = settings.RATIO_STANDARD if standard is None else standard

    if ratio <= final:
        return FINAL_CATEGORIES
    if ratio <= reduced:
        return REDUCED_CATEGORIES
    if ratio <= standard:
        return STANDARD_CATEGORIES
    return CATEGORY_ORDER


def schedule_categories(
    active_count: int,
    target: int,
    previous: Sequence[str] | None = None,
) -> tuple[str, ...]:
    """
    Default scheduler.

    ratio <= 1.5 -> Very Important / Not Important
    ratio <= 2   -> adds Quite Important
    ratio <= 3   -> adds Important
    otherwise    -> all five
    """
    if target < 1:
        raise ValueError(f"target must be positive, got {target}")

    chosen = categories_for_ratio(active_count / target)
    if previous is None:
        return chosen

    allowed = set(previous)
    # The keep/discard pair is always offered.
    return tuple(name for name in chosen if name in allowed or name in FINAL_CATEGORIES)
