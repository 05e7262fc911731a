"""
Database connection pool.

All Postgres access goes through the pool created here. JSON and JSONB
columns are decoded to Python lists/dicts by the connection codecs.
"""

from __future__ import annotations

import json

import asyncpg

from corevalues.config import settings

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> asyncpg.Pool:
    """
    Initialize the connection pool.
    Called once at startup; returns the pool for PostgresStorage.
    """
    global pool
    dsn = dsn or settings.DATABASE_URL
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable is required for Postgres storage")

    pool = await asyncpg.create_pool(
        dsn=dsn,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
        command_timeout=60,
        init=_init_connection,
    )
    return pool


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Set up JSON codecs on each new connection."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


def migration_url(dsn: str | None = None) -> str:
    """
    The same database as the pool, addressed for alembic's sync engine.
    asyncpg accepts both postgres:// and postgresql://; psycopg2 is named
    explicitly so SQLAlchemy never sees the postgres:// alias it rejects.
    """
    dsn = dsn or settings.DATABASE_URL
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable is required for migrations")

    for scheme in ("postgres://", "postgresql://"):
        if dsn.startswith(scheme):
            return "postgresql+psycopg2://" + dsn[len(scheme) :]
    return dsn
