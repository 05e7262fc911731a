"""Initial schema: sessions, rounds, completed sessions.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Session ids are human-readable names (adjective-noun-verb), not UUIDs
    op.execute("""
        CREATE TABLE sessions (
            id TEXT PRIMARY KEY,
            started_at TEXT NOT NULL,
            target_core_values INTEGER NOT NULL CHECK (target_core_values BETWEEN 1 AND 10),
            current_round INTEGER NOT NULL DEFAULT 1 CHECK (current_round >= 1),
            completed BOOLEAN NOT NULL DEFAULT false,
            initial_values JSONB NOT NULL DEFAULT '[]',
            remaining_values JSONB NOT NULL DEFAULT '[]',
            final_values JSONB NOT NULL DEFAULT '[]'
        );
    """)

    op.execute("""
        CREATE INDEX idx_sessions_started ON sessions(started_at DESC);
    """)

    # One row per round; commands hold the whole log, available_categories the latest snapshot
    op.execute("""
        CREATE TABLE rounds (
            session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
            round_number INTEGER NOT NULL CHECK (round_number >= 1),
            commands JSONB NOT NULL DEFAULT '[]',
            available_categories JSONB NOT NULL DEFAULT '{}',
            valid_categories JSONB NOT NULL DEFAULT '[]',
            initial_pool JSONB NOT NULL DEFAULT '[]',
            saved_at TEXT NOT NULL,
            PRIMARY KEY (session_id, round_number)
        );
    """)

    op.execute("""
        CREATE TABLE completed_sessions (
            session_id TEXT PRIMARY KEY REFERENCES sessions(id) ON DELETE CASCADE,
            final_values JSONB NOT NULL,
            completed_at TEXT NOT NULL
        );
    """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS completed_sessions CASCADE;")
    op.execute("DROP TABLE IF EXISTS rounds CASCADE;")
    op.execute("DROP TABLE IF EXISTS sessions CASCADE;")
