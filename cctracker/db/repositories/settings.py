"""Key/value application settings."""
from __future__ import annotations

import aiosqlite

from cctracker.date_utils import utc_now_iso

SUBSCRIPTION_START_DATE = "subscription_start_date"


class SqliteSettingsRepository:
    """Writes are left uncommitted for the caller's transaction."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, key: str) -> str | None:
        async with self.db.execute("SELECT value FROM settings WHERE key = ?", (key,)) as cur:
            row = await cur.fetchone()
            return row["value"] if row else None

    async def get_all(self) -> dict[str, str | None]:
        async with self.db.execute("SELECT key, value FROM settings ORDER BY key") as cur:
            return {row["key"]: row["value"] for row in await cur.fetchall()}

    async def set(self, key: str, value: str | None) -> None:
        await self.db.execute(
            """INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
            (key, value, utc_now_iso()),
        )
