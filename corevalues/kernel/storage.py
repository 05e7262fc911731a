"""
Core Values Kernel: Storage

The persistence contract the engine consumes, plus an in-memory
implementation for tests and single-process use.

Rounds are keyed by (session_id, round_number). save_round always receives
the whole command log and the latest snapshot, never a delta, so a write that
lands leaves a readable round.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import Any

from corevalues.kernel.commands import Command
from corevalues.kernel.naming import generate_session_name
from corevalues.kernel.types import (
    CATEGORY_ORDER,
    CompletedSession,
    Round,
    Session,
    Value,
    ValueWithReason,
    now_iso,
)

# Session attributes update_session accepts
SESSION_FIELDS: frozenset[str] = frozenset(
    {
        "timestamp",
        "target_core_values",
        "current_round",
        "completed",
        "initial_values",
        "remaining_values",
        "final_values",
    }
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SessionNotFound(Exception):
    """Session does not exist in storage."""


class RoundNotFound(Exception):
    """Round does not exist for this session."""


# ---------------------------------------------------------------------------
# Storage protocol
# ---------------------------------------------------------------------------


class SessionStorage:
    """
    Abstract storage interface.
    Implement with Postgres for production, or in-memory for tests.
    """

    async def create_session(self, session: Session, initial_round: Round) -> str:
        """
        Store a new session and its round 1 together. Assigns a
        human-readable id when session.id is empty. Returns the id.
        """
        raise NotImplementedError

    async def get_session(self, session_id: str) -> Session | None:
        raise NotImplementedError

    async def list_sessions(self) -> list[Session]:
        """All sessions, newest first."""
        raise NotImplementedError

    async def update_session(self, session_id: str, **changes: Any) -> Session:
        """Apply a partial update. Raises SessionNotFound, or ValueError for unknown fields."""
        raise NotImplementedError

    async def save_round(
        self,
        session_id: str,
        round_number: int,
        commands: Sequence[Command],
        categories: dict[str, list[Value]],
        *,
        valid_categories: Sequence[str] | None = None,
        initial_pool: Sequence[Value] | None = None,
    ) -> None:
        """Upsert a round, overwriting its log and snapshot."""
        raise NotImplementedError

    async def open_round(self, session_id: str, round_: Round, remaining_values: Sequence[Value]) -> None:
        """
        Start the next round: insert it and point the session at it, in one
        transaction. Raises SessionNotFound.
        """
        raise NotImplementedError

    async def get_round(self, session_id: str, round_number: int) -> Round | None:
        raise NotImplementedError

    async def get_rounds_by_session(self, session_id: str) -> list[Round]:
        """All rounds of a session, ordered by round number."""
        raise NotImplementedError

    async def save_completed_session(
        self,
        session_id: str,
        final_values: Sequence[ValueWithReason],
    ) -> CompletedSession:
        raise NotImplementedError

    async def get_completed_session(self, session_id: str) -> CompletedSession | None:
        raise NotImplementedError

    async def delete_session(self, session_id: str) -> None:
        """Remove a session with its rounds and completed record."""
        raise NotImplementedError


class MemoryStorage(SessionStorage):
    """
    In-memory storage for testing.

    Records are kept in their serialized form, so callers never share
    mutable objects with the store, the same as with a real database.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, dict[str, Any]] = {}
        self.rounds: dict[tuple[str, int], dict[str, Any]] = {}
        self.completed: dict[str, dict[str, Any]] = {}

    async def _exists(self, session_id: str) -> bool:
        return session_id in self.sessions

    async def create_session(self, session: Session, initial_round: Round) -> str:
        session_id = session.id or await generate_session_name(self._exists)
        stored = dataclasses.replace(session, id=session_id)
        round_ = dataclasses.replace(initial_round, session_id=session_id, timestamp=initial_round.timestamp or now_iso())
        self.sessions[session_id] = stored.to_dict()
        self.rounds[(session_id, round_.round_number)] = round_.to_dict()
        return session_id

    async def get_session(self, session_id: str) -> Session | None:
        data = self.sessions.get(session_id)
        return Session.from_dict(data) if data else None

    async def list_sessions(self) -> list[Session]:
        sessions = [Session.from_dict(d) for d in self.sessions.values()]
        return sorted(sessions, key=lambda s: s.timestamp, reverse=True)

    async def update_session(self, session_id: str, **changes: Any) -> Session:
        unknown = set(changes) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        current = await self.get_session(session_id)
        if current is None:
            raise SessionNotFound(session_id)
        updated = dataclasses.replace(current, **changes)
        self.sessions[session_id] = updated.to_dict()
        return updated

    async def save_round(
        self,
        session_id: str,
        round_number: int,
        commands: Sequence[Command],
        categories: dict[str, list[Value]],
        *,
        valid_categories: Sequence[str] | None = None,
        initial_pool: Sequence[Value] | None = None,
    ) -> None:
        existing = await self.get_round(session_id, round_number)
        round_ = Round(
            session_id=session_id,
            round_number=round_number,
            commands=list(commands),
            available_categories=categories,
            valid_categories=tuple(
                valid_categories
                if valid_categories is not None
                else (existing.valid_categories if existing else CATEGORY_ORDER)
            ),
            initial_pool=list(
                initial_pool if initial_pool is not None else (existing.initial_pool if existing else [])
            ),
            timestamp=now_iso(),
        )
        self.rounds[(session_id, round_number)] = round_.to_dict()

    async def open_round(self, session_id: str, round_: Round, remaining_values: Sequence[Value]) -> None:
        if session_id not in self.sessions:
            raise SessionNotFound(session_id)
        await self.update_session(
            session_id,
            current_round=round_.round_number,
            remaining_values=list(remaining_values),
        )
        stored = dataclasses.replace(round_, session_id=session_id, timestamp=round_.timestamp or now_iso())
        self.rounds[(session_id, round_.round_number)] = stored.to_dict()

    async def get_round(self, session_id: str, round_number: int) -> Round | None:
        data = self.rounds.get((session_id, round_number))
        return Round.from_dict(data) if data else None

    async def get_rounds_by_session(self, session_id: str) -> list[Round]:
        keys = sorted(k for k in self.rounds if k[0] == session_id)
        return [Round.from_dict(self.rounds[k]) for k in keys]

    async def save_completed_session(
        self,
        session_id: str,
        final_values: Sequence[ValueWithReason],
    ) -> CompletedSession:
        completed = CompletedSession(session_id=session_id, final_values=list(final_values), timestamp=now_iso())
        self.completed[session_id] = completed.to_dict()
        return completed

    async def get_completed_session(self, session_id: str) -> CompletedSession | None:
        data = self.completed.get(session_id)
        return CompletedSession.from_dict(data) if data else None

    async def delete_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)
        self.completed.pop(session_id, None)
        for key in [k for k in self.rounds if k[0] == session_id]:
            del self.rounds[key]
