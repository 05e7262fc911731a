"""
Early Finish -- Promotion and Demotion Plan

Walk the categories in priority order, keep the first `target` cards, send
everything else to Not Important. Whenever the active pool holds at least the
target, Very Important ends with exactly `target` cards and no card is lost.
"""

import random

from corevalues.kernel.categories import move_between_categories
from corevalues.kernel.early_finish import plan_early_finish
from corevalues.kernel.types import (
    ACTIVE_CATEGORIES,
    CATEGORY_ORDER,
    IMPORTANT,
    NOT_IMPORTANT,
    OF_SOME_IMPORTANCE,
    QUITE_IMPORTANT,
    VERY_IMPORTANT,
    CategoryState,
    Value,
    category_ids,
    empty_categories,
)


def card(card_id: str) -> Value:
    return Value(id=card_id, title=f"Value {card_id}")


def categories_of(layout: dict[str, str]) -> dict[str, list[Value]]:
    categories = empty_categories()
    for name, ids in layout.items():
        categories[name] = [card(i) for i in ids]
    return categories


def execute(categories: dict[str, list[Value]], target: int) -> CategoryState:
    """Apply a plan through the container, one move at a time."""
    state = CategoryState(categories=categories)
    for value, src, dst in plan_early_finish(categories, target).moves:
        mutation = move_between_categories(state, value, src, dst)
        assert mutation.changed
        state = mutation.state
    return state


class TestPlan:
    def test_promote_from_next_category(self):
        categories = categories_of({VERY_IMPORTANT: "A", QUITE_IMPORTANT: "BC"})
        plan = plan_early_finish(categories, 2)

        assert [(v.id, src, dst) for v, src, dst in plan.moves] == [
            ("B", QUITE_IMPORTANT, VERY_IMPORTANT),
            ("C", QUITE_IMPORTANT, NOT_IMPORTANT),
        ]

        ids = category_ids(execute(categories, 2).categories)
        assert ids[VERY_IMPORTANT] == ["A", "B"]
        assert ids[NOT_IMPORTANT] == ["C"]
        assert ids[QUITE_IMPORTANT] == []

    def test_within_category_rank_decides(self):
        categories = categories_of({IMPORTANT: "XYZ", NOT_IMPORTANT: "Q"})
        ids = category_ids(execute(categories, 1).categories)
        assert ids[VERY_IMPORTANT] == ["X"]
        assert ids[NOT_IMPORTANT] == ["Q", "Y", "Z"]

    def test_promotions_come_before_demotions(self):
        categories = categories_of({QUITE_IMPORTANT: "AB", OF_SOME_IMPORTANCE: "CD"})
        moves = plan_early_finish(categories, 2).moves
        assert [dst for _, _, dst in moves] == [VERY_IMPORTANT, VERY_IMPORTANT, NOT_IMPORTANT, NOT_IMPORTANT]

    def test_already_exact_needs_no_moves(self):
        categories = categories_of({VERY_IMPORTANT: "AB", NOT_IMPORTANT: "C"})
        assert plan_early_finish(categories, 2).moves == []

    def test_very_important_overflow_is_demoted(self):
        categories = categories_of({VERY_IMPORTANT: "ABCD"})
        ids = category_ids(execute(categories, 2).categories)
        assert ids[VERY_IMPORTANT] == ["A", "B"]
        assert ids[NOT_IMPORTANT] == ["C", "D"]


class TestExactness:
    def test_random_layouts(self):
        rng = random.Random(11)
        for _ in range(50):
            target = rng.randint(1, 6)
            categories = empty_categories()
            ids = [str(i) for i in range(rng.randint(target, 20))]
            for card_id in ids:
                categories[rng.choice(CATEGORY_ORDER)].append(card(card_id))
            active = sum(len(categories[name]) for name in ACTIVE_CATEGORIES)
            if active < target:
                continue

            result = execute(categories, target).categories
            assert len(result[VERY_IMPORTANT]) == target
            assert all(result[name] == [] for name in ACTIVE_CATEGORIES if name != VERY_IMPORTANT)
            kept = [v.id for v in result[VERY_IMPORTANT]] + [v.id for v in result[NOT_IMPORTANT]]
            assert sorted(kept) == sorted(ids)
