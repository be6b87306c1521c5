"""SQLite storage for sessions and their sub-agents."""
from __future__ import annotations

import logging

import aiosqlite

from cctracker.models import SessionUpsert

logger = logging.getLogger("cctracker.db")

ORPHAN_SUBAGENT_PREFIX = "agent-"

# Earliest non-null of two ISO timestamps. Scalar MIN/MAX return NULL if any
# argument is NULL, so each side falls back to the other first.
_WIDEN_START = "MIN(COALESCE({t}.start_time, excluded.start_time), COALESCE(excluded.start_time, {t}.start_time))"
_WIDEN_END = "MAX(COALESCE({t}.end_time, excluded.end_time), COALESCE(excluded.end_time, {t}.end_time))"


class SqliteSessionRepository:
    """Session and sub-agent identity resolution.

    Re-ingesting an external id widens the stored time range and fills fields
    that are still NULL; it never overwrites a value that is already set.
    Writes are left uncommitted for the caller's transaction.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, session: SessionUpsert) -> int:
        await self.db.execute(
            f"""INSERT INTO sessions (
                external_id, project, start_time, end_time, model, version, custom_title
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(external_id) DO UPDATE SET
                project=COALESCE(sessions.project, excluded.project),
                start_time={_WIDEN_START.format(t="sessions")},
                end_time={_WIDEN_END.format(t="sessions")},
                model=COALESCE(sessions.model, excluded.model),
                version=COALESCE(sessions.version, excluded.version),
                custom_title=COALESCE(sessions.custom_title, excluded.custom_title)
            """,
            (
                session.external_id,
                session.project,
                session.start_time,
                session.end_time,
                session.model,
                session.version,
                session.custom_title,
            ),
        )
        session_id = await self.get_id_by_external_id(session.external_id)
        if session_id is None:
            raise RuntimeError(f"Session upsert did not persist {session.external_id!r}")
        return session_id

    async def get_id_by_external_id(self, external_id: str) -> int | None:
        async with self.db.execute(
            "SELECT id FROM sessions WHERE external_id = ?", (external_id,)
        ) as cur:
            row = await cur.fetchone()
            return row["id"] if row else None

    async def get_by_id(self, session_id: int) -> dict | None:
        async with self.db.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def resolve(self, external_id: str, project: str | None = None) -> int:
        """Return the session id, creating a placeholder row on first sight."""
        existing = await self.get_id_by_external_id(external_id)
        if existing is not None:
            return existing
        logger.debug("Creating placeholder session %s", external_id)
        return await self.upsert(SessionUpsert(external_id=external_id, project=project))

    async def upsert_subagent(
        self,
        external_id: str,
        session_id: int,
        agent_type: str | None = None,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> int:
        await self.db.execute(
            f"""INSERT INTO subagents (external_id, session_id, type, start_time, end_time)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(external_id) DO UPDATE SET
                type=COALESCE(subagents.type, excluded.type),
                start_time={_WIDEN_START.format(t="subagents")},
                end_time={_WIDEN_END.format(t="subagents")}
            """,
            (external_id, session_id, agent_type, start_time, end_time),
        )
        subagent_id = await self.get_subagent_id_by_external_id(external_id)
        if subagent_id is None:
            raise RuntimeError(f"Sub-agent upsert did not persist {external_id!r}")
        return subagent_id

    async def get_subagent_id_by_external_id(self, external_id: str) -> int | None:
        async with self.db.execute(
            "SELECT id FROM subagents WHERE external_id = ?", (external_id,)
        ) as cur:
            row = await cur.fetchone()
            return row["id"] if row else None

    async def update_custom_title(self, session_id: int, custom_title: str | None) -> bool:
        cur = await self.db.execute(
            "UPDATE sessions SET custom_title = ? WHERE id = ?",
            (custom_title, session_id),
        )
        return cur.rowcount > 0

    async def delete(self, session_id: int) -> bool:
        """Remove a session together with its usage records, exchanges and sub-agents."""
        await self._delete_dependents("session_id = ?", (session_id,))
        cur = await self.db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        return cur.rowcount > 0

    async def cleanup_orphaned_subagent_sessions(self) -> int:
        """Delete top-level sessions that were created from sub-agent files."""
        pattern = f"{ORPHAN_SUBAGENT_PREFIX}%"
        selector = "session_id IN (SELECT id FROM sessions WHERE external_id LIKE ?)"
        await self._delete_dependents(selector, (pattern,))
        cur = await self.db.execute("DELETE FROM sessions WHERE external_id LIKE ?", (pattern,))
        if cur.rowcount:
            logger.info("Removed %d orphaned sub-agent session(s)", cur.rowcount)
        return cur.rowcount

    async def _delete_dependents(self, where: str, params: tuple) -> None:
        for table in ("usage_records", "exchanges", "subagents"):
            await self.db.execute(f"DELETE FROM {table} WHERE {where}", params)
