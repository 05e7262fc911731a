"""
Core Values Kernel: Session Engine

Sits between the pure functions (container, validator, reducer, scheduling,
early finish) and storage. One instance owns one session's state; instances
never share mutable state, so several can run side by side.

Operations: start, load, drop, move_within_category, move_between_categories,
next_round, early_finish, complete_reasoning, flush

Every mutation is applied in memory first, then the round's whole log and
latest snapshot are written. Recoverable failures come back as an
EngineResult; only invariant violations raise.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from corevalues.config import settings
from corevalues.kernel import categories as container
from corevalues.kernel.catalog import deal, load_catalog, shuffled
from corevalues.kernel.categories import Mutation
from corevalues.kernel.commands import Command
from corevalues.kernel.early_finish import plan_early_finish
from corevalues.kernel.reducer import ReconstructedSession, integrity_check, reconstruct, resume
from corevalues.kernel.scheduling import CategoryScheduler, schedule_categories
from corevalues.kernel.storage import RoundNotFound, SessionNotFound, SessionStorage
from corevalues.kernel.types import (
    ACTIVE_CATEGORIES,
    NOT_IMPORTANT,
    VERY_IMPORTANT,
    CategoryState,
    Round,
    Session,
    Value,
    ValueWithReason,
    copy_categories,
    empty_categories,
    now_iso,
)
from corevalues.kernel.validator import RoundStatus, advance_blockers, evaluate_round
from corevalues.models import ReasoningRequest, StartSessionRequest

logger = logging.getLogger(__name__)

Shuffler = Callable[[Sequence[Value]], list[Value]]

# EngineResult.error codes
VALIDATION = "validation"
NOOP = "noop"
PERSISTENCE = "persistence"
WRONG_PHASE = "wrong_phase"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class EngineError(Exception):
    """An engine invariant was violated."""


class NotEnoughCardsError(EngineError):
    """Fewer cards than the target survived into a new round or session."""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class SessionPhase(str, Enum):
    SORTING = "sorting"
    REFINING = "refining"
    READY_FOR_NEXT_ROUND = "ready_for_next_round"
    END_GAME_READY = "end_game_ready"
    REASONING = "reasoning"
    COMPLETED = "completed"


@dataclass
class EngineResult:
    """
    Outcome of one engine operation.

    ok=False with error=VALIDATION carries the blockers in `reasons`.
    persisted=False means memory moved ahead of storage; call flush().
    """

    ok: bool
    commands: list[Command] = field(default_factory=list)
    error: str | None = None
    reasons: list[str] = field(default_factory=list)
    persisted: bool = True
    detail: str | None = None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SessionEngine:
    """
    Round controller for a single session.

    Use SessionEngine.start() for a new session or SessionEngine.load() to
    resume one. Mutating operations are serialized by a per-engine lock.
    """

    def __init__(
        self,
        storage: SessionStorage,
        session: Session,
        current_round: Round,
        state: CategoryState,
        *,
        scheduler: CategoryScheduler = schedule_categories,
        shuffler: Shuffler | None = None,
        min_discard: int | None = None,
    ):
        self._storage = storage
        self._session = session
        self._round = current_round
        self._state = state
        self._scheduler = scheduler
        self._shuffle = shuffler or shuffled
        self._min_discard = settings.MIN_NOT_IMPORTANT if min_discard is None else min_discard
        self._lock = asyncio.Lock()
        self._dirty = False

    # -- construction --

    @classmethod
    async def start(
        cls,
        storage: SessionStorage,
        request: StartSessionRequest | None = None,
        *,
        rng: random.Random | None = None,
        scheduler: CategoryScheduler = schedule_categories,
        shuffler: Shuffler | None = None,
        min_discard: int | None = None,
    ) -> SessionEngine:
        """
        Deal a pool and create the session with its first round.
        Raises NotEnoughCardsError when the pool is smaller than the target.
        """
        request = request or StartSessionRequest()
        if request.values is None:
            source: Sequence[Value] = load_catalog()
        else:
            source = [Value(id=v.id, title=v.title, description=v.description) for v in request.values]
        pool = deal(source, request.max_cards, rng)

        target = request.target_core_values
        if len(pool) < target:
            raise NotEnoughCardsError(f"Dealt {len(pool)} cards for a target of {target}")

        valid = scheduler(len(pool), target, None)
        ts = now_iso()
        session = Session(
            id="",
            timestamp=ts,
            target_core_values=target,
            initial_values=list(pool),
            remaining_values=list(pool),
        )
        first_round = Round(
            session_id="",
            round_number=1,
            valid_categories=valid,
            initial_pool=list(pool),
            timestamp=ts,
        )
        session_id = await storage.create_session(session, first_round)
        session.id = session_id
        first_round.session_id = session_id

        logger.info("session_engine: started session %s with %d cards, target %d", session_id, len(pool), target)
        state = CategoryState(categories=empty_categories(), remaining=list(pool), valid_categories=valid)
        return cls(
            storage,
            session,
            first_round,
            state,
            scheduler=scheduler,
            shuffler=shuffler,
            min_discard=min_discard,
        )

    @classmethod
    async def load(
        cls,
        storage: SessionStorage,
        session_id: str,
        *,
        scheduler: CategoryScheduler = schedule_categories,
        shuffler: Shuffler | None = None,
        min_discard: int | None = None,
    ) -> SessionEngine:
        """Resume a session from storage. Raises SessionNotFound / RoundNotFound."""
        session = await storage.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        current_round = await storage.get_round(session_id, session.current_round)
        if current_round is None:
            raise RoundNotFound(f"{session_id} round {session.current_round}")

        state = resume(session, current_round)
        current_round.available_categories = copy_categories(state.categories)
        logger.info(
            "session_engine: resumed session %s at round %d (%d commands)",
            session_id,
            current_round.round_number,
            len(current_round.commands),
        )
        return cls(
            storage,
            session,
            current_round,
            state,
            scheduler=scheduler,
            shuffler=shuffler,
            min_discard=min_discard,
        )

    # -- read side --

    @property
    def session_id(self) -> str:
        return self._session.id

    @property
    def session(self) -> Session:
        return self._session

    @property
    def round_number(self) -> int:
        return self._round.round_number

    @property
    def target_core_values(self) -> int:
        return self._session.target_core_values

    @property
    def state(self) -> CategoryState:
        return self._state.copy()

    @property
    def categories(self) -> dict[str, list[Value]]:
        return copy_categories(self._state.categories)

    @property
    def remaining(self) -> list[Value]:
        return list(self._state.remaining)

    @property
    def valid_categories(self) -> tuple[str, ...]:
        return self._state.valid_categories

    @property
    def commands(self) -> tuple[Command, ...]:
        return tuple(self._round.commands)

    @property
    def final_values(self) -> list[Value]:
        return list(self._session.final_values)

    @property
    def is_dirty(self) -> bool:
        """True while the latest round write has not reached storage."""
        return self._dirty

    @property
    def status(self) -> RoundStatus:
        return evaluate_round(
            self._state.categories,
            self._state.remaining,
            self.target_core_values,
            self._state.valid_categories,
            min_discard=self._min_discard,
        )

    @property
    def phase(self) -> SessionPhase:
        if self._session.completed:
            return SessionPhase.COMPLETED
        if self._session.final_values:
            return SessionPhase.REASONING
        if self._state.remaining:
            return SessionPhase.SORTING
        status = self.status
        if status.can_advance:
            return SessionPhase.END_GAME_READY if status.should_end_game else SessionPhase.READY_FOR_NEXT_ROUND
        return SessionPhase.REFINING

    @property
    def display_categories(self) -> dict[str, list[Value]]:
        """Categories to show: valid or non-empty ones; discards hidden once completed."""
        names = container.visible_categories(self._state)
        if self._session.completed:
            names = [name for name in names if name != NOT_IMPORTANT]
        return {name: list(self._state.categories[name]) for name in names}

    def find(self, card_id: str) -> Value | None:
        """Look up a card of this round by id."""
        _, card = container.find_card(self._state, card_id)
        return card

    def check_integrity(self) -> tuple[bool, list[str]]:
        """Verify the in-memory snapshot against a replay of the current log."""
        return integrity_check(self._round)

    async def history(self) -> ReconstructedSession:
        """Every stored round of this session, rebuilt from its log."""
        return reconstruct(await self._storage.get_rounds_by_session(self.session_id))

    # -- sorting --

    async def drop(self, value: Value, category: str) -> EngineResult:
        """Place an unsorted card at the end of a valid category."""
        async with self._lock:
            if not self._accepts_mutations():
                return self._wrong_phase("drop")
            mutation = container.drop(self._state, value, category)
            return await self._commit(mutation, f"drop {value.id} -> {category}")

    async def move_within_category(self, category: str, from_index: int, to_index: int) -> EngineResult:
        """Reorder one category."""
        async with self._lock:
            if not self._accepts_mutations():
                return self._wrong_phase("move")
            mutation = container.move_within_category(self._state, category, from_index, to_index)
            return await self._commit(mutation, f"reorder {category} {from_index} -> {to_index}")

    async def move_between_categories(self, value: Value, from_category: str, to_category: str) -> EngineResult:
        """Move a placed card to the end of another category."""
        async with self._lock:
            if not self._accepts_mutations():
                return self._wrong_phase("move")
            mutation = container.move_between_categories(self._state, value, from_category, to_category)
            return await self._commit(mutation, f"move {value.id} {from_category} -> {to_category}")

    async def flush(self) -> EngineResult:
        """Write the current log and snapshot again after a failed write."""
        async with self._lock:
            return await self._flush()

    # -- transitions --

    async def next_round(self) -> EngineResult:
        """
        Advance, or enter reasoning when Very Important already holds the
        target. Rejected with blockers unless the round can advance.
        """
        async with self._lock:
            if not self._accepts_mutations():
                return self._wrong_phase("next_round")

            status = self.status
            if not status.can_advance:
                return self._rejected("next_round", status)

            flushed = await self._flush()
            if not flushed.ok:
                return flushed

            if status.should_end_game:
                return await self._enter_reasoning(self._state.categories[VERY_IMPORTANT])

            pool = [card for name in ACTIVE_CATEGORIES for card in self._state.categories[name]]
            target = self.target_core_values
            if len(pool) < target:
                raise NotEnoughCardsError(
                    f"Session {self.session_id} round {self.round_number}: {len(pool)} cards for a target of {target}"
                )

            dealt = self._shuffle(pool)
            valid = self._scheduler(len(dealt), target, self._state.valid_categories)
            next_number = self.round_number + 1
            new_round = Round(
                session_id=self.session_id,
                round_number=next_number,
                valid_categories=valid,
                initial_pool=list(dealt),
                timestamp=now_iso(),
            )
            try:
                await self._storage.open_round(self.session_id, new_round, dealt)
            except Exception as e:
                logger.error("session_engine: could not open round %d for %s: %s", next_number, self.session_id, e)
                return EngineResult(ok=False, error=PERSISTENCE, persisted=False, detail=str(e))

            self._round = new_round
            self._session.current_round = next_number
            self._session.remaining_values = list(dealt)
            self._state = CategoryState(categories=empty_categories(), remaining=list(dealt), valid_categories=valid)
            logger.info(
                "session_engine: session %s advanced to round %d with %d cards in %d categories",
                self.session_id,
                next_number,
                len(dealt),
                len(valid),
            )
            return EngineResult(ok=True)

    async def early_finish(self) -> EngineResult:
        """
        Promote the best-ranked cards into Very Important until it holds the
        target, demote the rest to Not Important, then enter reasoning.
        One Move per card, each persisted before the next.
        """
        async with self._lock:
            if not self._accepts_mutations():
                return self._wrong_phase("early_finish")

            status = self.status
            if not status.can_advance:
                return self._rejected("early_finish", status)

            flushed = await self._flush()
            if not flushed.ok:
                return flushed

            plan = plan_early_finish(self._state.categories, self.target_core_values)
            closed = sorted({dst for _, _, dst in plan.moves if not container.is_selectable(self._state, dst)})
            if closed:
                raise EngineError(
                    f"Session {self.session_id} round {self.round_number}: early finish needs {closed}, "
                    f"round offers {list(self._state.valid_categories)}"
                )

            applied: list[Command] = []
            for card, src, dst in plan.moves:
                mutation = container.move_between_categories(self._state, card, src, dst)
                if mutation.command is None:
                    raise EngineError(f"Session {self.session_id}: early finish move {card.id} {src} -> {dst} refused")
                result = await self._commit(mutation, f"early finish {card.id} {src} -> {dst}")
                applied.extend(result.commands)
                if not result.persisted:
                    return EngineResult(
                        ok=False,
                        commands=applied,
                        error=PERSISTENCE,
                        persisted=False,
                        detail=result.detail,
                    )

            result = await self._enter_reasoning(self._state.categories[VERY_IMPORTANT])
            result.commands = applied
            return result

    async def complete_reasoning(self, request: ReasoningRequest | None = None) -> EngineResult:
        """Store the final values with their reasons and close the session."""
        async with self._lock:
            if self.phase is not SessionPhase.REASONING:
                return self._wrong_phase("complete_reasoning")

            reasons = (request or ReasoningRequest()).by_card()
            final_ids = {v.id for v in self._session.final_values}
            unknown = sorted(set(reasons) - final_ids)
            if unknown:
                logger.warning("session_engine: reasons for unknown cards %s in %s", unknown, self.session_id)
                return EngineResult(ok=False, error=VALIDATION, reasons=["unknown_card"], detail=", ".join(unknown))

            final = [ValueWithReason(value=v, reason=reasons.get(v.id)) for v in self._session.final_values]
            try:
                await self._storage.save_completed_session(self.session_id, final)
                await self._storage.update_session(self.session_id, completed=True, current_round=self.round_number)
            except Exception as e:
                logger.error("session_engine: could not complete session %s: %s", self.session_id, e)
                return EngineResult(ok=False, error=PERSISTENCE, persisted=False, detail=str(e))

            self._session.completed = True
            logger.info("session_engine: session %s completed with %d values", self.session_id, len(final))
            return EngineResult(ok=True)

    # -- internals --

    def _accepts_mutations(self) -> bool:
        return self.phase not in (SessionPhase.REASONING, SessionPhase.COMPLETED)

    def _wrong_phase(self, action: str) -> EngineResult:
        logger.warning("session_engine: %s not allowed in phase %s (%s)", action, self.phase.value, self.session_id)
        return EngineResult(ok=False, error=WRONG_PHASE, detail=self.phase.value)

    def _rejected(self, action: str, status: RoundStatus) -> EngineResult:
        reasons = advance_blockers(status)
        logger.info("session_engine: %s rejected for %s: %s", action, self.session_id, ", ".join(reasons))
        return EngineResult(ok=False, error=VALIDATION, reasons=reasons)

    async def _commit(self, mutation: Mutation, description: str) -> EngineResult:
        if mutation.command is None:
            logger.warning("session_engine: ignored %s in session %s", description, self.session_id)
            return EngineResult(ok=False, error=NOOP, detail=description)

        self._state = mutation.state
        self._round.commands.append(mutation.command)
        self._round.available_categories = copy_categories(self._state.categories)

        error = await self._save_round()
        if error is not None:
            return EngineResult(ok=True, commands=[mutation.command], persisted=False, detail=error)
        return EngineResult(ok=True, commands=[mutation.command])

    async def _save_round(self) -> str | None:
        """Write the whole log plus snapshot, retrying once. Returns the error text on failure."""
        commands = list(self._round.commands)
        snapshot = copy_categories(self._state.categories)
        try:
            await self._storage.save_round(self.session_id, self.round_number, commands, snapshot)
        except Exception as first:
            logger.warning("session_engine: retrying round save for %s: %s", self.session_id, first)
            try:
                await self._storage.save_round(self.session_id, self.round_number, commands, snapshot)
            except Exception as e:
                logger.error(
                    "session_engine: round %d of %s not saved (%d commands in memory): %s",
                    self.round_number,
                    self.session_id,
                    len(commands),
                    e,
                )
                self._dirty = True
                return str(e)
        self._dirty = False
        return None

    async def _flush(self) -> EngineResult:
        if not self._dirty:
            return EngineResult(ok=True)
        error = await self._save_round()
        if error is not None:
            return EngineResult(ok=False, error=PERSISTENCE, persisted=False, detail=error)
        return EngineResult(ok=True)

    async def _enter_reasoning(self, final: Sequence[Value]) -> EngineResult:
        final_values = list(final)
        try:
            await self._storage.update_session(self.session_id, final_values=final_values)
        except Exception as e:
            logger.error("session_engine: could not store final values for %s: %s", self.session_id, e)
            return EngineResult(ok=False, error=PERSISTENCE, persisted=False, detail=str(e))

        self._session.final_values = final_values
        logger.info("session_engine: session %s entered reasoning with %d values", self.session_id, len(final_values))
        return EngineResult(ok=True)
