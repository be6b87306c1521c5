import unittest

from cctracker.db import connection
from cctracker.db.repositories import (
    SqliteSessionRepository,
    SqliteSyncStateRepository,
    SqliteUsageRepository,
)
from cctracker.db.sqlite_migrations import run_migrations
from cctracker.models import Exchange, SessionUpsert, TokenCounts, UsageRecord


def _record(external_id: str, output_tokens: int = 10, ts: str = "2026-01-15T10:00:00Z") -> UsageRecord:
    return UsageRecord(
        external_id=external_id,
        timestamp=ts,
        model="claude-sonnet-4-20250514",
        tokens=TokenCounts(input_tokens=100, output_tokens=output_tokens),
    )


class SessionRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await connection.connect(":memory:")
        await run_migrations(self.db)
        self.repo = SqliteSessionRepository(self.db)
        self.usage = SqliteUsageRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_upsert_widens_range_and_fills_nulls(self) -> None:
        first_id = await self.repo.upsert(
            SessionUpsert(
                external_id="abc",
                start_time="2026-01-15T10:00:00Z",
                end_time="2026-01-15T10:05:00Z",
            )
        )
        second_id = await self.repo.upsert(
            SessionUpsert(
                external_id="abc",
                project="/srv/app",
                start_time="2026-01-15T09:00:00Z",
                end_time="2026-01-15T10:02:00Z",
                model="claude-sonnet-4-20250514",
                version="1.2.3",
            )
        )
        await self.repo.upsert(
            SessionUpsert(external_id="abc", project="/other", model="claude-opus-4-20250514", version="9.9.9")
        )

        self.assertEqual(first_id, second_id)
        row = await self.repo.get_by_id(first_id)
        self.assertEqual(row["start_time"], "2026-01-15T09:00:00Z")
        self.assertEqual(row["end_time"], "2026-01-15T10:05:00Z")
        self.assertEqual(row["project"], "/srv/app")
        self.assertEqual(row["model"], "claude-sonnet-4-20250514")
        self.assertEqual(row["version"], "1.2.3")

        async with self.db.execute("SELECT COUNT(*) FROM sessions") as cur:
            self.assertEqual((await cur.fetchone())[0], 1)

    async def test_upsert_fills_missing_time_range(self) -> None:
        session_id = await self.repo.upsert(SessionUpsert(external_id="abc"))
        await self.repo.upsert(
            SessionUpsert(external_id="abc", start_time="2026-01-15T10:00:00Z", end_time="2026-01-15T11:00:00Z")
        )

        row = await self.repo.get_by_id(session_id)
        self.assertEqual(row["start_time"], "2026-01-15T10:00:00Z")
        self.assertEqual(row["end_time"], "2026-01-15T11:00:00Z")

    async def test_custom_title_is_only_replaced_explicitly(self) -> None:
        session_id = await self.repo.upsert(SessionUpsert(external_id="abc", custom_title="First"))
        await self.repo.upsert(SessionUpsert(external_id="abc", custom_title="Second"))
        self.assertEqual((await self.repo.get_by_id(session_id))["custom_title"], "First")

        self.assertTrue(await self.repo.update_custom_title(session_id, "Renamed"))
        self.assertEqual((await self.repo.get_by_id(session_id))["custom_title"], "Renamed")
        self.assertFalse(await self.repo.update_custom_title(9999, "Nope"))

    async def test_resolve_creates_placeholder_once(self) -> None:
        created = await self.repo.resolve("parent-1", project="/srv/app")
        again = await self.repo.resolve("parent-1", project="/elsewhere")

        self.assertEqual(created, again)
        row = await self.repo.get_by_id(created)
        self.assertIsNone(row["model"])
        self.assertIsNone(row["start_time"])
        self.assertEqual(row["project"], "/srv/app")

    async def test_upsert_subagent_widens_and_keeps_type(self) -> None:
        session_id = await self.repo.resolve("parent-1")
        first = await self.repo.upsert_subagent(
            "agent-1", session_id, "claude-haiku-4-5", "2026-01-15T10:01:00Z", "2026-01-15T10:02:00Z"
        )
        second = await self.repo.upsert_subagent(
            "agent-1", session_id, "claude-opus-4", "2026-01-15T10:00:30Z", "2026-01-15T10:01:30Z"
        )

        self.assertEqual(first, second)
        self.assertEqual(await self.repo.get_subagent_id_by_external_id("agent-1"), first)
        async with self.db.execute("SELECT * FROM subagents WHERE id = ?", (first,)) as cur:
            row = await cur.fetchone()
        self.assertEqual(row["type"], "claude-haiku-4-5")
        self.assertEqual(row["start_time"], "2026-01-15T10:00:30Z")
        self.assertEqual(row["end_time"], "2026-01-15T10:02:00Z")

    async def test_delete_removes_dependent_rows(self) -> None:
        session_id = await self.repo.resolve("abc")
        subagent_id = await self.repo.upsert_subagent("agent-1", session_id)
        await self.usage.upsert_usage_records(session_id, [_record("m1")])
        await self.usage.upsert_usage_records(session_id, [_record("m2")], subagent_id=subagent_id)
        await self.usage.upsert_exchanges(session_id, [Exchange(user_timestamp="2026-01-15T10:00:00Z")])

        self.assertTrue(await self.repo.delete(session_id))
        self.assertFalse(await self.repo.delete(session_id))
        for table in ("sessions", "subagents", "usage_records", "exchanges"):
            async with self.db.execute(f"SELECT COUNT(*) FROM {table}") as cur:
                self.assertEqual((await cur.fetchone())[0], 0, table)

    async def test_cleanup_orphaned_subagent_sessions(self) -> None:
        keep_id = await self.repo.resolve("abc-123")
        orphan_id = await self.repo.resolve("agent-old")
        await self.usage.upsert_usage_records(keep_id, [_record("m1")])
        await self.usage.upsert_usage_records(orphan_id, [_record("m2")])

        removed = await self.repo.cleanup_orphaned_subagent_sessions()

        self.assertEqual(removed, 1)
        self.assertIsNone(await self.repo.get_id_by_external_id("agent-old"))
        self.assertEqual(await self.repo.get_id_by_external_id("abc-123"), keep_id)
        self.assertEqual(len(await self.usage.list_usage_records(keep_id)), 1)
        self.assertEqual(await self.usage.list_usage_records(orphan_id), [])


class UsageRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await connection.connect(":memory:")
        await run_migrations(self.db)
        self.sessions = SqliteSessionRepository(self.db)
        self.repo = SqliteUsageRepository(self.db)
        self.session_id = await self.sessions.resolve("abc")

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_reupsert_overwrites_counts(self) -> None:
        await self.repo.upsert_usage_records(self.session_id, [_record("m1", output_tokens=10)])
        await self.repo.upsert_usage_records(self.session_id, [_record("m1", output_tokens=200)])

        rows = await self.repo.list_usage_records(self.session_id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["output_tokens"], 200)
        self.assertEqual(rows[0]["input_tokens"], 100)

    async def test_empty_batches_are_noops(self) -> None:
        self.assertEqual(await self.repo.upsert_usage_records(self.session_id, []), 0)
        self.assertEqual(await self.repo.upsert_exchanges(self.session_id, []), 0)

    async def test_exchanges_update_in_place(self) -> None:
        await self.repo.upsert_exchanges(
            self.session_id,
            [Exchange(user_timestamp="2026-01-15T10:00:00Z", assistant_message_id="m1", duration_seconds=2.0)],
        )
        await self.repo.upsert_exchanges(
            self.session_id,
            [Exchange(user_timestamp="2026-01-15T10:00:00Z", assistant_message_id="m2", duration_seconds=5.0)],
        )

        rows = await self.repo.list_exchanges(self.session_id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["assistant_message_id"], "m2")
        self.assertEqual(rows[0]["duration_seconds"], 5.0)

    async def test_delete_session_records_keeps_subagent_rows(self) -> None:
        subagent_id = await self.sessions.upsert_subagent("agent-1", self.session_id)
        await self.repo.upsert_usage_records(self.session_id, [_record("main-1")])
        await self.repo.upsert_usage_records(self.session_id, [_record("sub-1")], subagent_id=subagent_id)
        await self.repo.upsert_exchanges(self.session_id, [Exchange(user_timestamp="2026-01-15T10:00:00Z")])

        await self.repo.delete_session_records(self.session_id)

        rows = await self.repo.list_usage_records(self.session_id)
        self.assertEqual([r["external_id"] for r in rows], ["sub-1"])
        self.assertEqual(await self.repo.list_exchanges(self.session_id), [])

        await self.repo.delete_subagent_records(subagent_id)
        self.assertEqual(await self.repo.list_usage_records(self.session_id), [])


class SyncStateRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await connection.connect(":memory:")
        await run_migrations(self.db)
        self.repo = SqliteSyncStateRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_upsert_moves_offset(self) -> None:
        self.assertIsNone(await self.repo.get_sync_state("/p/a.jsonl"))

        await self.repo.upsert_sync_state("/p/a.jsonl", 120)
        await self.repo.upsert_sync_state("/p/a.jsonl", 480)

        state = await self.repo.get_sync_state("/p/a.jsonl")
        self.assertEqual(state["last_offset"], 480)
        self.assertTrue(state["last_synced"])

    async def test_list_and_delete(self) -> None:
        await self.repo.upsert_sync_state("/p/b.jsonl", 2)
        await self.repo.upsert_sync_state("/p/a.jsonl", 1)

        self.assertEqual([s["file_path"] for s in await self.repo.list_all()], ["/p/a.jsonl", "/p/b.jsonl"])

        await self.repo.delete_sync_state("/p/a.jsonl")
        self.assertIsNone(await self.repo.get_sync_state("/p/a.jsonl"))
        self.assertEqual(len(await self.repo.list_all()), 1)


if __name__ == "__main__":
    unittest.main()
