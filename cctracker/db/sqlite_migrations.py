"""Database schema creation and versioning.

Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("cctracker.db")

SCHEMA_VERSION = 3

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Sessions ────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS sessions (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id   TEXT NOT NULL UNIQUE,
    project       TEXT,
    start_time    TEXT,
    end_time      TEXT,
    model         TEXT,
    version       TEXT,
    custom_title  TEXT,
    created_at    TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_sessions_project    ON sessions(project);
CREATE INDEX IF NOT EXISTS idx_sessions_start_time ON sessions(start_time);

-- ── 2. Sub-agents ──────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS subagents (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id TEXT NOT NULL UNIQUE,
    session_id  INTEGER NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    type        TEXT,
    start_time  TEXT,
    end_time    TEXT
);

CREATE INDEX IF NOT EXISTS idx_subagents_session ON subagents(session_id);

-- ── 3. Usage records (one per assistant message id) ────────────────
CREATE TABLE IF NOT EXISTS usage_records (
    id                          INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id                 TEXT NOT NULL UNIQUE,
    session_id                  INTEGER NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    subagent_id                 INTEGER REFERENCES subagents(id) ON DELETE CASCADE,
    timestamp                   TEXT NOT NULL,
    model                       TEXT,
    input_tokens                INTEGER NOT NULL DEFAULT 0,
    output_tokens               INTEGER NOT NULL DEFAULT 0,
    cache_creation_input_tokens INTEGER NOT NULL DEFAULT 0,
    cache_read_input_tokens     INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_usage_session   ON usage_records(session_id);
CREATE INDEX IF NOT EXISTS idx_usage_subagent  ON usage_records(subagent_id);
CREATE INDEX IF NOT EXISTS idx_usage_timestamp ON usage_records(timestamp);

-- ── 4. Exchanges (user prompt -> assistant response turns) ─────────
CREATE TABLE IF NOT EXISTS exchanges (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id           INTEGER NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    user_message_id      TEXT,
    user_timestamp       TEXT NOT NULL,
    user_content         TEXT,
    assistant_message_id TEXT,
    assistant_timestamp  TEXT,
    duration_seconds     REAL,
    UNIQUE (session_id, user_timestamp)
);

CREATE INDEX IF NOT EXISTS idx_exchanges_session ON exchanges(session_id, user_timestamp);

-- ── 5. Sync state (incremental change detection) ───────────────────
CREATE TABLE IF NOT EXISTS sync_state (
    file_path    TEXT PRIMARY KEY,
    last_offset  INTEGER NOT NULL DEFAULT 0,
    last_synced  TEXT NOT NULL
);

-- ── 6. Settings ────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT,
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.OperationalError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s → %s", current_version, SCHEMA_VERSION)

    await db.executescript(_TABLES)

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Migrations complete, schema version %s", SCHEMA_VERSION)
