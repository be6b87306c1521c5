"""File watcher service using watchfiles.

Monitors the transcript projects directory and triggers incremental
re-sync of added or modified transcripts.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from watchfiles import Change, awatch

from cctracker import config

logger = logging.getLogger("cctracker.watcher")


class FileWatcher:
    """Background file watcher that triggers sync on change.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self, sync_engine, projects_dir: Path) -> None:
        """Start watching the projects directory in a background task."""
        if self._running:
            logger.warning("File watcher already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(sync_engine, Path(projects_dir)))
        logger.info("File watcher started for %s", projects_dir)

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self, sync_engine, projects_dir: Path) -> None:
        if not projects_dir.exists():
            logger.warning("Projects directory %s does not exist, watcher has nothing to monitor", projects_dir)
            self._running = False
            return

        try:
            async for changes in awatch(projects_dir, stop_event=self._stop_event):
                if not self._running:
                    break

                changed = self._classify_changes(changes)
                if changed:
                    logger.info("Detected %d transcript changes, syncing...", len(changed))
                    try:
                        await sync_engine.sync_changed_files(changed)
                    except Exception:
                        logger.exception("Error syncing changed files")
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        finally:
            self._running = False

    def _classify_changes(self, changes: set[tuple[Change, str]]) -> list[Path]:
        """Keep added or modified transcript files; deletions leave stored data alone."""
        result = []
        for change_type, path_str in changes:
            path = Path(path_str)
            if path.suffix != config.TRANSCRIPT_SUFFIX:
                continue
            if change_type in (Change.modified, Change.added):
                result.append(path)
        return sorted(set(result))


# Singleton instance
file_watcher = FileWatcher()
