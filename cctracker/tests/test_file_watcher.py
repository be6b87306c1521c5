import asyncio
import tempfile
import unittest
from pathlib import Path

from watchfiles import Change

from cctracker.db.file_watcher import FileWatcher


class _RecordingSyncEngine:
    def __init__(self) -> None:
        self.batches: list[list[Path]] = []

    async def sync_changed_files(self, paths):
        self.batches.append(list(paths))
        return {"files": len(self.batches[-1]), "usage_records": 0, "failed": 0}


class FileWatcherTests(unittest.IsolatedAsyncioTestCase):
    def test_classify_keeps_added_and_modified_transcripts(self) -> None:
        watcher = FileWatcher()
        changes = {
            (Change.added, "/p/-srv-app/new.jsonl"),
            (Change.modified, "/p/-srv-app/abc/subagents/agent-1.jsonl"),
            (Change.deleted, "/p/-srv-app/old.jsonl"),
            (Change.modified, "/p/-srv-app/notes.md"),
        }

        self.assertEqual(
            watcher._classify_changes(changes),  # noqa: SLF001
            [Path("/p/-srv-app/abc/subagents/agent-1.jsonl"), Path("/p/-srv-app/new.jsonl")],
        )

    async def test_missing_directory_stops_immediately(self) -> None:
        watcher = FileWatcher()

        await watcher.start(_RecordingSyncEngine(), Path("/nonexistent/cctracker/projects"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertFalse(watcher.is_running)
        await watcher.stop()

    async def test_start_and_stop(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        watcher = FileWatcher()

        await watcher.start(_RecordingSyncEngine(), Path(tmpdir.name))
        self.assertTrue(watcher.is_running)

        await watcher.stop()
        self.assertFalse(watcher.is_running)


if __name__ == "__main__":
    unittest.main()
