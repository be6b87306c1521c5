"""SQLite storage for usage records and exchanges."""
from __future__ import annotations

from typing import Iterable

import aiosqlite

from cctracker.models import Exchange, UsageRecord


class SqliteUsageRepository:
    """Usage records keyed by assistant message id; exchanges keyed by (session, user timestamp)."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert_usage_records(
        self,
        session_id: int,
        records: Iterable[UsageRecord],
        subagent_id: int | None = None,
    ) -> int:
        rows = [
            (
                record.external_id,
                session_id,
                subagent_id,
                record.timestamp,
                record.model,
                record.tokens.input_tokens,
                record.tokens.output_tokens,
                record.tokens.cache_creation_input_tokens,
                record.tokens.cache_read_input_tokens,
            )
            for record in records
        ]
        if not rows:
            return 0
        await self.db.executemany(
            """INSERT INTO usage_records (
                external_id, session_id, subagent_id, timestamp, model,
                input_tokens, output_tokens, cache_creation_input_tokens, cache_read_input_tokens
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(external_id) DO UPDATE SET
                input_tokens=excluded.input_tokens,
                output_tokens=excluded.output_tokens,
                cache_creation_input_tokens=excluded.cache_creation_input_tokens,
                cache_read_input_tokens=excluded.cache_read_input_tokens
            """,
            rows,
        )
        return len(rows)

    async def upsert_exchanges(self, session_id: int, exchanges: Iterable[Exchange]) -> int:
        rows = [
            (
                session_id,
                exchange.user_message_id,
                exchange.user_timestamp,
                exchange.user_content,
                exchange.assistant_message_id,
                exchange.assistant_timestamp,
                exchange.duration_seconds,
            )
            for exchange in exchanges
        ]
        if not rows:
            return 0
        await self.db.executemany(
            """INSERT INTO exchanges (
                session_id, user_message_id, user_timestamp, user_content,
                assistant_message_id, assistant_timestamp, duration_seconds
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id, user_timestamp) DO UPDATE SET
                user_message_id=excluded.user_message_id,
                user_content=excluded.user_content,
                assistant_message_id=excluded.assistant_message_id,
                assistant_timestamp=excluded.assistant_timestamp,
                duration_seconds=excluded.duration_seconds
            """,
            rows,
        )
        return len(rows)

    async def delete_session_records(self, session_id: int) -> None:
        """Drop rows derived from a main transcript: its untagged usage records and its exchanges."""
        await self.db.execute(
            "DELETE FROM usage_records WHERE session_id = ? AND subagent_id IS NULL",
            (session_id,),
        )
        await self.db.execute("DELETE FROM exchanges WHERE session_id = ?", (session_id,))

    async def delete_subagent_records(self, subagent_id: int) -> None:
        await self.db.execute("DELETE FROM usage_records WHERE subagent_id = ?", (subagent_id,))

    async def list_usage_records(self, session_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM usage_records WHERE session_id = ? ORDER BY timestamp, id",
            (session_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_exchanges(self, session_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM exchanges WHERE session_id = ? ORDER BY user_timestamp, id",
            (session_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]
