"""
Session Engine -- Full Session Flow

Start a session, sort cards through several rounds, reach the end game, give
reasons, and complete. Every step is checked against what storage holds.

Covers:
  - start deals the pool and stores session + round 1
  - drops and moves append exactly one command each
  - next_round carries only active cards and narrows the categories
  - next_round is refused (with blockers) until the round can advance
  - end game moves the session into reasoning
  - early finish promotes/demotes to exactly the target
  - completing stores the final values with reasons, once
  - phases and display categories
"""

import random

import pytest

from corevalues.kernel.scheduling import FINAL_CATEGORIES, STANDARD_CATEGORIES
from corevalues.kernel.session_engine import (
    NOOP,
    VALIDATION,
    WRONG_PHASE,
    NotEnoughCardsError,
    SessionEngine,
    SessionPhase,
)
from corevalues.kernel.types import (
    CATEGORY_ORDER,
    IMPORTANT,
    NOT_IMPORTANT,
    QUITE_IMPORTANT,
    VERY_IMPORTANT,
    category_ids,
)
from corevalues.kernel.validator import CARDS_REMAINING, NO_DISCARD, NOT_ENOUGH_ACTIVE
from corevalues.models import ReasoningRequest, StartSessionRequest, ValueIn, ValueReason


# ============================================================================
# Helpers
# ============================================================================


def all_categories(active_count, target, previous=None):
    return CATEGORY_ORDER


def request(ids: str, target: int) -> StartSessionRequest:
    return StartSessionRequest(
        target_core_values=target,
        values=[ValueIn(id=i, title=f"Value {i}") for i in ids],
    )


async def start(storage, ids: str, target: int, **kwargs) -> SessionEngine:
    return await SessionEngine.start(storage, request(ids, target), rng=random.Random(1), **kwargs)


async def place(engine: SessionEngine, layout: dict[str, str]) -> None:
    for category, ids in layout.items():
        for card_id in ids:
            result = await engine.drop(engine.find(card_id), category)
            assert result.ok, (card_id, category, result)


# ============================================================================
# Start
# ============================================================================


class TestStart:
    @pytest.mark.asyncio
    async def test_start_stores_session_and_first_round(self, storage):
        engine = await start(storage, "ABCDEF", 2)

        session = await storage.get_session(engine.session_id)
        assert session is not None
        assert session.target_core_values == 2
        assert session.current_round == 1
        assert sorted(v.id for v in session.initial_values) == list("ABCDEF")

        round_ = await storage.get_round(engine.session_id, 1)
        assert round_.commands == []
        assert [v.id for v in round_.initial_pool] == [v.id for v in engine.remaining]
        assert engine.valid_categories == STANDARD_CATEGORIES
        assert engine.phase is SessionPhase.SORTING

    @pytest.mark.asyncio
    async def test_session_id_is_human_readable(self, storage):
        engine = await start(storage, "ABC", 1)
        assert len(engine.session_id.split("-")) >= 3

    @pytest.mark.asyncio
    async def test_deals_from_catalog_by_default(self, storage):
        engine = await SessionEngine.start(storage, rng=random.Random(5))
        assert len(engine.remaining) == 35
        assert engine.target_core_values == 5
        assert len({v.id for v in engine.remaining}) == 35

    @pytest.mark.asyncio
    async def test_max_cards_limits_the_deal(self, storage):
        req = StartSessionRequest(target_core_values=3, max_cards=10)
        engine = await SessionEngine.start(storage, req, rng=random.Random(5))
        assert len(engine.remaining) == 10

    @pytest.mark.asyncio
    async def test_pool_smaller_than_target_raises(self, storage):
        with pytest.raises(NotEnoughCardsError):
            await start(storage, "AB", 3)
        assert storage.sessions == {}

    def test_duplicate_value_ids_refused(self):
        with pytest.raises(ValueError):
            request("AA", 1)

    def test_target_outside_range_refused(self):
        with pytest.raises(ValueError):
            request("ABC", 11)


# ============================================================================
# Sorting
# ============================================================================


class TestSorting:
    @pytest.mark.asyncio
    async def test_each_operation_appends_one_command(self, storage):
        engine = await start(storage, "ABCD", 2, scheduler=all_categories)
        await place(engine, {IMPORTANT: "ABC"})
        await engine.move_within_category(IMPORTANT, 0, 2)
        await engine.move_between_categories(engine.find("B"), IMPORTANT, VERY_IMPORTANT)

        assert len(engine.commands) == 5
        assert category_ids(engine.categories)[IMPORTANT] == ["C", "A"]
        assert category_ids(engine.categories)[VERY_IMPORTANT] == ["B"]

        stored = await storage.get_round(engine.session_id, 1)
        assert [c.type for c in stored.commands] == ["DROP", "DROP", "DROP", "MOVE", "MOVE"]
        assert category_ids(stored.available_categories) == category_ids(engine.categories)

    @pytest.mark.asyncio
    async def test_invalid_request_is_noop(self, storage):
        # 4 cards / 2 = ratio 2: Important is not offered
        engine = await start(storage, "ABCD", 2)
        assert IMPORTANT not in engine.valid_categories

        result = await engine.drop(engine.find("A"), IMPORTANT)
        assert not result.ok
        assert result.error == NOOP
        assert engine.commands == ()
        assert len(engine.remaining) == 4

        stored = await storage.get_round(engine.session_id, 1)
        assert stored.commands == []

    @pytest.mark.asyncio
    async def test_refining_after_everything_placed(self, storage):
        engine = await start(storage, "ABCD", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "A", QUITE_IMPORTANT: "BCD"})
        assert engine.phase is SessionPhase.REFINING

        await engine.move_between_categories(engine.find("D"), QUITE_IMPORTANT, NOT_IMPORTANT)
        assert engine.phase is SessionPhase.READY_FOR_NEXT_ROUND


# ============================================================================
# Advancing
# ============================================================================


class TestAdvanceGuard:
    @pytest.mark.asyncio
    async def test_refused_with_cards_remaining(self, storage):
        engine = await start(storage, "ABCDE", 3, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "ABC", NOT_IMPORTANT: "D"})

        result = await engine.next_round()
        assert not result.ok
        assert result.error == VALIDATION
        assert result.reasons == [CARDS_REMAINING]
        assert engine.round_number == 1
        assert len(engine.commands) == 4

    @pytest.mark.asyncio
    async def test_refused_without_discard(self, storage):
        engine = await start(storage, "ABCD", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "A", QUITE_IMPORTANT: "BCD"})

        result = await engine.next_round()
        assert result.reasons == [NO_DISCARD]
        assert (await storage.get_session(engine.session_id)).current_round == 1

    @pytest.mark.asyncio
    async def test_refused_with_too_few_survivors(self, storage):
        engine = await start(storage, "ABCD", 3, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "A", NOT_IMPORTANT: "BCD"})

        result = await engine.next_round()
        assert result.reasons == [NOT_ENOUGH_ACTIVE]
        assert not (await engine.early_finish()).ok
        assert engine.phase is SessionPhase.REFINING

    @pytest.mark.asyncio
    async def test_next_round_carries_active_cards(self, storage):
        engine = await start(storage, "ABCDEF", 2)
        assert engine.valid_categories == STANDARD_CATEGORIES
        await place(engine, {VERY_IMPORTANT: "A", QUITE_IMPORTANT: "B", IMPORTANT: "C", NOT_IMPORTANT: "DEF"})

        result = await engine.next_round()
        assert result.ok
        assert engine.round_number == 2
        assert sorted(v.id for v in engine.remaining) == ["A", "B", "C"]
        assert all(cards == [] for cards in engine.categories.values())
        # 3 cards for a target of 2: keep or discard only
        assert engine.valid_categories == FINAL_CATEGORIES
        assert engine.commands == ()

        session = await storage.get_session(engine.session_id)
        assert session.current_round == 2
        round_two = await storage.get_round(engine.session_id, 2)
        assert [v.id for v in round_two.initial_pool] == [v.id for v in engine.remaining]
        round_one = await storage.get_round(engine.session_id, 1)
        assert category_ids(round_one.available_categories)[NOT_IMPORTANT] == ["D", "E", "F"]


# ============================================================================
# End game
# ============================================================================


class TestEndGame:
    @pytest.mark.asyncio
    async def test_next_round_enters_reasoning(self, storage):
        engine = await start(storage, "ABCDE", 3, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "ABC", NOT_IMPORTANT: "DE"})
        assert engine.phase is SessionPhase.END_GAME_READY

        result = await engine.next_round()
        assert result.ok
        assert engine.phase is SessionPhase.REASONING
        assert [v.id for v in engine.final_values] == ["A", "B", "C"]
        assert engine.round_number == 1

        stored = await storage.get_session(engine.session_id)
        assert [v.id for v in stored.final_values] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_sorting_closed_during_reasoning(self, storage):
        engine = await start(storage, "ABC", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "AB", NOT_IMPORTANT: "C"})
        await engine.next_round()

        result = await engine.move_between_categories(engine.find("A"), VERY_IMPORTANT, NOT_IMPORTANT)
        assert result.error == WRONG_PHASE
        assert (await engine.next_round()).error == WRONG_PHASE

    @pytest.mark.asyncio
    async def test_early_finish(self, storage):
        engine = await start(storage, "ABCD", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "A", QUITE_IMPORTANT: "BC", NOT_IMPORTANT: "D"})

        result = await engine.early_finish()
        assert result.ok
        assert [(c.card_id, c.to_category) for c in result.commands] == [
            ("B", VERY_IMPORTANT),
            ("C", NOT_IMPORTANT),
        ]
        assert category_ids(engine.categories)[VERY_IMPORTANT] == ["A", "B"]
        assert category_ids(engine.categories)[NOT_IMPORTANT] == ["D", "C"]
        assert engine.phase is SessionPhase.REASONING
        assert [v.id for v in engine.final_values] == ["A", "B"]

        stored = await storage.get_round(engine.session_id, 1)
        assert len(stored.commands) == 6
        assert engine.check_integrity() == (True, [])

    @pytest.mark.asyncio
    async def test_complete_reasoning(self, storage):
        engine = await start(storage, "ABC", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "AB", NOT_IMPORTANT: "C"})
        await engine.next_round()

        result = await engine.complete_reasoning(
            ReasoningRequest(reasons=[ValueReason(card_id="A", reason="It keeps me grounded")])
        )
        assert result.ok
        assert engine.phase is SessionPhase.COMPLETED
        assert NOT_IMPORTANT not in engine.display_categories

        completed = await storage.get_completed_session(engine.session_id)
        assert [(v.value.id, v.reason) for v in completed.final_values] == [
            ("A", "It keeps me grounded"),
            ("B", None),
        ]
        assert (await storage.get_session(engine.session_id)).completed

    @pytest.mark.asyncio
    async def test_complete_only_once(self, storage):
        engine = await start(storage, "ABC", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "AB", NOT_IMPORTANT: "C"})
        await engine.next_round()

        assert (await engine.complete_reasoning()).ok
        assert (await engine.complete_reasoning()).error == WRONG_PHASE

    @pytest.mark.asyncio
    async def test_reason_for_unknown_card_refused(self, storage):
        engine = await start(storage, "ABC", 2, scheduler=all_categories)
        await place(engine, {VERY_IMPORTANT: "AB", NOT_IMPORTANT: "C"})
        await engine.next_round()

        result = await engine.complete_reasoning(ReasoningRequest(reasons=[ValueReason(card_id="C", reason="no")]))
        assert result.error == VALIDATION
        assert engine.phase is SessionPhase.REASONING
        assert await storage.get_completed_session(engine.session_id) is None

    @pytest.mark.asyncio
    async def test_complete_before_reasoning_refused(self, storage):
        engine = await start(storage, "ABC", 2)
        assert (await engine.complete_reasoning()).error == WRONG_PHASE


# ============================================================================
# Multi-round walkthrough
# ============================================================================


class TestWalkthrough:
    @pytest.mark.asyncio
    async def test_three_rounds_to_completion(self, storage):
        engine = await start(storage, "ABCDEFGHIJ", 2)
        # 10 / 2 = 5: all five categories
        assert engine.valid_categories == CATEGORY_ORDER
        await place(
            engine,
            {VERY_IMPORTANT: "A", QUITE_IMPORTANT: "BC", IMPORTANT: "D", NOT_IMPORTANT: "EFGHIJ"},
        )
        assert (await engine.next_round()).ok

        # 4 / 2 = 2: Very Important, Quite Important, Not Important
        assert engine.valid_categories == (VERY_IMPORTANT, QUITE_IMPORTANT, NOT_IMPORTANT)
        await place(engine, {VERY_IMPORTANT: "A", QUITE_IMPORTANT: "BC", NOT_IMPORTANT: "D"})
        assert (await engine.next_round()).ok

        assert engine.round_number == 3
        assert engine.valid_categories == FINAL_CATEGORIES
        await place(engine, {VERY_IMPORTANT: "AC", NOT_IMPORTANT: "B"})
        assert (await engine.next_round()).ok
        assert (await engine.complete_reasoning()).ok

        history = await engine.history()
        assert history.current_round == 3
        assert sorted(history.categories_per_round) == [1, 2, 3]
        assert category_ids(history.categories_per_round[3])[VERY_IMPORTANT] == ["A", "C"]
        assert len(await storage.get_rounds_by_session(engine.session_id)) == 3
