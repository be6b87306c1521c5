"""Database connection helpers.

Opens SQLite connections with WAL mode and wraps multi-statement writes in a
single transaction. The connection is owned by whoever opened it (the API
lifespan, the CLI, or a test) and passed down explicitly.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from cctracker import config

logger = logging.getLogger("cctracker.db")

MEMORY_DB = ":memory:"


async def connect(db_path: str | Path | None = None) -> aiosqlite.Connection:
    """Open a connection with the pragmas every caller expects."""
    target = str(db_path if db_path is not None else config.DB_PATH)
    if target != MEMORY_DB:
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(target)
    db.row_factory = aiosqlite.Row
    if target != MEMORY_DB:
        # Enable WAL mode for better concurrent read performance
        await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.execute("PRAGMA busy_timeout=5000")
    logger.info("Database connection established: %s", target)
    return db


async def close(db: aiosqlite.Connection) -> None:
    await db.close()
    logger.info("Database connection closed")


_write_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = weakref.WeakKeyDictionary()


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    """The lock that serializes write transactions on ``db``."""
    lock = _write_locks.get(db)
    if lock is None:
        lock = _write_locks[db] = asyncio.Lock()
    return lock


@asynccontextmanager
async def transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """Commit everything written inside the block, or roll it all back on error.

    Transactions on the same connection run one at a time. Every write on a
    shared connection goes through here; nothing else commits or rolls back.
    """
    async with write_lock(db):
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        else:
            await db.commit()
