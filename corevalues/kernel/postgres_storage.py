"""
PostgresStorage adapter for the Core Values kernel.

Implements the SessionStorage protocol on three tables: sessions, rounds,
completed_sessions (see alembic/versions). Rounds and completed sessions
cascade on session delete.

Expects a pool created by corevalues.db.init_pool, whose codecs decode JSONB.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import asyncpg

from corevalues.kernel.commands import Command, command_from_dict
from corevalues.kernel.naming import generate_session_name
from corevalues.kernel.storage import SESSION_FIELDS, SessionNotFound, SessionStorage
from corevalues.kernel.types import (
    CATEGORY_ORDER,
    CompletedSession,
    Round,
    Session,
    Value,
    ValueWithReason,
    categories_from_dict,
    categories_to_dict,
    now_iso,
)

logger = logging.getLogger(__name__)

# Session attribute -> column
_SESSION_COLUMNS: dict[str, str] = {
    "timestamp": "started_at",
    "target_core_values": "target_core_values",
    "current_round": "current_round",
    "completed": "completed",
    "initial_values": "initial_values",
    "remaining_values": "remaining_values",
    "final_values": "final_values",
}

_VALUE_LIST_FIELDS = {"initial_values", "remaining_values", "final_values"}


def _values(values: Sequence[Value]) -> list[dict[str, Any]]:
    return [v.to_dict() for v in values]


def _row_to_session(row: asyncpg.Record) -> Session:
    return Session(
        id=row["id"],
        timestamp=row["started_at"],
        target_core_values=row["target_core_values"],
        current_round=row["current_round"],
        completed=row["completed"],
        initial_values=[Value.from_dict(v) for v in row["initial_values"]],
        remaining_values=[Value.from_dict(v) for v in row["remaining_values"]],
        final_values=[Value.from_dict(v) for v in row["final_values"]],
    )


def _row_to_round(row: asyncpg.Record) -> Round:
    return Round(
        session_id=row["session_id"],
        round_number=row["round_number"],
        commands=[command_from_dict(c) for c in row["commands"]],
        available_categories=categories_from_dict(row["available_categories"]),
        valid_categories=tuple(row["valid_categories"]),
        initial_pool=[Value.from_dict(v) for v in row["initial_pool"]],
        timestamp=row["saved_at"],
    )


class PostgresStorage(SessionStorage):
    """Postgres-based storage for sessions, rounds and completed sessions."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def _exists(self, session_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT EXISTS(SELECT 1 FROM sessions WHERE id = $1)", session_id)

    async def create_session(self, session: Session, initial_round: Round) -> str:
        session_id = session.id or await generate_session_name(self._exists)
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO sessions (id, started_at, target_core_values, current_round, completed,
                                          initial_values, remaining_values, final_values)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    session_id,
                    session.timestamp,
                    session.target_core_values,
                    session.current_round,
                    session.completed,
                    _values(session.initial_values),
                    _values(session.remaining_values),
                    _values(session.final_values),
                )
                await self._insert_round(conn, session_id, initial_round)
        logger.info("postgres_storage: created session %s", session_id)
        return session_id

    async def get_session(self, session_id: str) -> Session | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM sessions WHERE id = $1", session_id)
            return _row_to_session(row) if row else None

    async def list_sessions(self) -> list[Session]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT * FROM sessions ORDER BY started_at DESC")
            return [_row_to_session(row) for row in rows]

    async def update_session(self, session_id: str, **changes: Any) -> Session:
        unknown = set(changes) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        if not changes:
            session = await self.get_session(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            return session

        async with self.pool.acquire() as conn:
            return await self._update_session(conn, session_id, changes)

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
        # COALESCE keeps the stored layout and pool when the caller omits them.
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO rounds (session_id, round_number, commands, available_categories,
                                    valid_categories, initial_pool, saved_at)
                VALUES ($1, $2, $3, $4, COALESCE($5, $8::jsonb), COALESCE($6, '[]'::jsonb), $7)
                ON CONFLICT (session_id, round_number)
                DO UPDATE SET commands = EXCLUDED.commands,
                              available_categories = EXCLUDED.available_categories,
                              valid_categories = COALESCE($5, rounds.valid_categories),
                              initial_pool = COALESCE($6, rounds.initial_pool),
                              saved_at = EXCLUDED.saved_at
                """,
                session_id,
                round_number,
                [c.to_dict() for c in commands],
                categories_to_dict(categories),
                list(valid_categories) if valid_categories is not None else None,
                _values(initial_pool) if initial_pool is not None else None,
                now_iso(),
                list(CATEGORY_ORDER),
            )

    async def open_round(self, session_id: str, round_: Round, remaining_values: Sequence[Value]) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._update_session(
                    conn,
                    session_id,
                    {"current_round": round_.round_number, "remaining_values": list(remaining_values)},
                )
                await self._insert_round(conn, session_id, round_)

    async def get_round(self, session_id: str, round_number: int) -> Round | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM rounds WHERE session_id = $1 AND round_number = $2",
                session_id,
                round_number,
            )
            return _row_to_round(row) if row else None

    async def get_rounds_by_session(self, session_id: str) -> list[Round]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM rounds WHERE session_id = $1 ORDER BY round_number",
                session_id,
            )
            return [_row_to_round(row) for row in rows]

    async def save_completed_session(
        self,
        session_id: str,
        final_values: Sequence[ValueWithReason],
    ) -> CompletedSession:
        completed = CompletedSession(session_id=session_id, final_values=list(final_values), timestamp=now_iso())
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO completed_sessions (session_id, final_values, completed_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (session_id)
                DO UPDATE SET final_values = EXCLUDED.final_values, completed_at = EXCLUDED.completed_at
                """,
                session_id,
                [v.to_dict() for v in completed.final_values],
                completed.timestamp,
            )
        return completed

    async def get_completed_session(self, session_id: str) -> CompletedSession | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM completed_sessions WHERE session_id = $1", session_id)
            if row is None:
                return None
            return CompletedSession(
                session_id=row["session_id"],
                final_values=[ValueWithReason.from_dict(v) for v in row["final_values"]],
                timestamp=row["completed_at"],
            )

    async def delete_session(self, session_id: str) -> None:
        async with self.pool.acquire() as conn:
            # rounds and completed_sessions go with it (ON DELETE CASCADE)
            await conn.execute("DELETE FROM sessions WHERE id = $1", session_id)

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()

    # -- helpers --

    async def _update_session(self, conn: asyncpg.Connection, session_id: str, changes: dict[str, Any]) -> Session:
        values = [_values(v) if k in _VALUE_LIST_FIELDS else v for k, v in changes.items()]
        set_clause = ", ".join(f"{_SESSION_COLUMNS[k]} = ${i + 2}" for i, k in enumerate(changes))
        # Column names come from _SESSION_COLUMNS only.
        row = await conn.fetchrow(
            f"UPDATE sessions SET {set_clause} WHERE id = $1 RETURNING *",  # noqa: S608
            session_id,
            *values,
        )
        if row is None:
            raise SessionNotFound(session_id)
        return _row_to_session(row)

    async def _insert_round(self, conn: asyncpg.Connection, session_id: str, round_: Round) -> None:
        await conn.execute(
            """
            INSERT INTO rounds (session_id, round_number, commands, available_categories,
                                valid_categories, initial_pool, saved_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            session_id,
            round_.round_number,
            [c.to_dict() for c in round_.commands],
            categories_to_dict(round_.available_categories),
            list(round_.valid_categories),
            _values(round_.initial_pool),
            round_.timestamp or now_iso(),
        )
