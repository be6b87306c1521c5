"""Per-file sync checkpoints."""
from __future__ import annotations

import aiosqlite

from cctracker.date_utils import utc_now_iso


class SqliteSyncStateRepository:
    """Track the byte offset consumed from each transcript for incremental scanning.

    Writes are not committed here; the sync engine commits them together with
    the rows derived from the same file.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get_sync_state(self, file_path: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM sync_state WHERE file_path = ?", (file_path,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def upsert_sync_state(self, file_path: str, last_offset: int) -> None:
        await self.db.execute(
            """INSERT INTO sync_state (file_path, last_offset, last_synced)
               VALUES (?, ?, ?)
               ON CONFLICT(file_path) DO UPDATE SET
                 last_offset=excluded.last_offset, last_synced=excluded.last_synced""",
            (file_path, last_offset, utc_now_iso()),
        )

    async def delete_sync_state(self, file_path: str) -> None:
        await self.db.execute("DELETE FROM sync_state WHERE file_path = ?", (file_path,))

    async def list_all(self) -> list[dict]:
        async with self.db.execute("SELECT * FROM sync_state ORDER BY file_path") as cur:
            return [dict(r) for r in await cur.fetchall()]
