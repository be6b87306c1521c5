"""Incremental transcript → DB sync engine.

Scans the projects directory for transcript files, parses them, and upserts
usage records, exchanges and session identities into SQLite.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterable

import aiosqlite

from cctracker import config
from cctracker.db.connection import transaction
from cctracker.db.repositories import (
    SqliteSessionRepository,
    SqliteSyncStateRepository,
    SqliteUsageRepository,
)
from cctracker.models import ParsedTranscript, SessionUpsert, SyncAllResult, SyncFileResult
from cctracker.parsers.paths import (
    is_subagent_file,
    parent_external_id,
    project_from_path,
    session_external_id,
    subagent_dir_for,
)
from cctracker.parsers.transcripts import parse_transcript, read_transcript

logger = logging.getLogger("cctracker.sync")


class SyncError(Exception):
    """A transcript could not be ingested."""


class SubagentPathError(SyncError):
    """A sub-agent transcript path does not name its parent session."""


# Failures confined to one transcript; storage errors still propagate.
_FILE_ERRORS = (OSError, ValueError, OverflowError, RecursionError, SyncError)


def _main_files_first(paths: Iterable[Path]) -> list[Path]:
    # Parents must exist before their sub-agents are linked; sorted() is stable.
    return sorted(paths, key=is_subagent_file)


class SyncEngine:
    """File → DB synchronization keyed on per-file byte offsets.

    Each file is written in its own transaction together with its checkpoint,
    so a failure leaves neither partial rows nor an advanced offset behind.
    """

    def __init__(self, db: aiosqlite.Connection, projects_dir: Path | None = None):
        self.db = db
        self.projects_dir = Path(projects_dir) if projects_dir is not None else config.CLAUDE_PROJECTS_DIR
        self.session_repo = SqliteSessionRepository(db)
        self.usage_repo = SqliteUsageRepository(db)
        self.sync_repo = SqliteSyncStateRepository(db)

    async def sync_file(self, path: str | Path, incremental: bool = True) -> SyncFileResult:
        """Sync one transcript; main-session files also pull in their sub-agent files."""
        source = Path(path)
        if not source.is_file():
            raise FileNotFoundError(f"Transcript not found: {source}")

        result = await self._sync_single_file(source, incremental)

        if not is_subagent_file(source):
            subagent_dir = subagent_dir_for(source)
            if subagent_dir.is_dir():
                for subagent_file in sorted(subagent_dir.glob(f"*{config.TRANSCRIPT_SUFFIX}")):
                    sub_result = await self._sync_single_file(subagent_file, incremental)
                    result.usage_records_imported += sub_result.usage_records_imported
        return result

    async def sync_all(self) -> SyncAllResult:
        """Full resync of every transcript under the projects directory."""
        stats = SyncAllResult()
        async with transaction(self.db):
            await self.session_repo.cleanup_orphaned_subagent_sessions()

        if not self.projects_dir.exists():
            logger.warning("Projects directory does not exist: %s", self.projects_dir)
            return stats

        t0 = time.monotonic()
        files = _main_files_first(sorted(self.projects_dir.rglob(f"*{config.TRANSCRIPT_SUFFIX}")))
        for transcript in files:
            stats.files_scanned += 1
            try:
                result = await self._sync_single_file(transcript, incremental=False)
            except _FILE_ERRORS as e:
                stats.files_failed += 1
                logger.warning("Skipping %s: %s", transcript, e)
                continue
            if result.usage_records_imported > 0:
                stats.sessions_imported += 1
                stats.usage_records_imported += result.usage_records_imported

        logger.info(
            "Full sync: %d files scanned, %d sessions, %d usage records, %d failed in %.2fs",
            stats.files_scanned,
            stats.sessions_imported,
            stats.usage_records_imported,
            stats.files_failed,
            time.monotonic() - t0,
        )
        return stats

    async def sync_changed_files(self, paths: Iterable[str | Path]) -> dict:
        """Incrementally sync files reported by the file watcher.

        Deleted and non-transcript paths are ignored.
        """
        stats = {"files": 0, "usage_records": 0, "failed": 0}
        candidates = [
            Path(p) for p in paths
            if Path(p).suffix == config.TRANSCRIPT_SUFFIX and Path(p).is_file()
        ]
        for transcript in _main_files_first(candidates):
            try:
                result = await self._sync_single_file(transcript, incremental=True)
            except _FILE_ERRORS as e:
                stats["failed"] += 1
                logger.warning("Skipping %s: %s", transcript, e)
                continue
            stats["files"] += 1
            stats["usage_records"] += result.usage_records_imported
        return stats

    async def _sync_single_file(self, path: Path, incremental: bool) -> SyncFileResult:
        """Parse and store one transcript without touching its sub-agent directory."""
        file_path = str(path)
        external_id = session_external_id(path)
        project = project_from_path(path, self.projects_dir)
        is_subagent = is_subagent_file(path)
        parent_id = parent_external_id(path) if is_subagent else None
        if is_subagent and parent_id is None:
            raise SubagentPathError(f"Cannot derive parent session from sub-agent path: {path}")

        result = SyncFileResult(session_external_id=external_id, project=project)
        size = path.stat().st_size

        if incremental:
            cached = await self.sync_repo.get_sync_state(file_path)
            if cached and cached["last_offset"] >= size:
                return result  # unchanged

        parsed = parse_transcript(read_transcript(path), external_id, is_subagent)

        async with transaction(self.db):
            if is_subagent:
                result.usage_records_imported = await self._store_subagent(
                    parsed, parent_id, project, incremental
                )
            else:
                result.usage_records_imported, result.exchanges_imported = await self._store_session(
                    parsed, project, incremental
                )
            await self.sync_repo.upsert_sync_state(file_path, size)

        if not is_subagent and parsed.usage_records and not parsed.exchanges:
            logger.warning(
                "Transcript %s has %d usage records but no exchanges; the log format may have changed",
                path,
                len(parsed.usage_records),
            )
        logger.debug(
            "Synced %s: %d usage records, %d exchanges",
            path,
            result.usage_records_imported,
            result.exchanges_imported,
        )
        return result

    async def _store_session(
        self, parsed: ParsedTranscript, project: str | None, incremental: bool
    ) -> tuple[int, int]:
        if not incremental:
            existing_id = await self.session_repo.get_id_by_external_id(parsed.session_external_id)
            if existing_id is not None:
                await self.usage_repo.delete_session_records(existing_id)

        if not parsed.usage_records:
            return 0, 0

        meta = parsed.metadata
        session_id = await self.session_repo.upsert(
            SessionUpsert(
                external_id=parsed.session_external_id,
                project=project,
                start_time=meta.first_timestamp,
                end_time=meta.last_timestamp,
                model=meta.model,
                version=meta.version,
                custom_title=meta.custom_title,
            )
        )
        records = await self.usage_repo.upsert_usage_records(session_id, parsed.usage_records)
        exchanges = await self.usage_repo.upsert_exchanges(session_id, parsed.exchanges)
        return records, exchanges

    async def _store_subagent(
        self, parsed: ParsedTranscript, parent_id: str, project: str | None, incremental: bool
    ) -> int:
        if not incremental:
            existing_id = await self.session_repo.get_subagent_id_by_external_id(parsed.session_external_id)
            if existing_id is not None:
                await self.usage_repo.delete_subagent_records(existing_id)

        if not parsed.usage_records:
            return 0

        meta = parsed.metadata
        session_id = await self.session_repo.resolve(parent_id, project)
        subagent_id = await self.session_repo.upsert_subagent(
            parsed.session_external_id,
            session_id,
            agent_type=meta.model,
            start_time=meta.first_timestamp,
            end_time=meta.last_timestamp,
        )
        return await self.usage_repo.upsert_usage_records(
            session_id, parsed.usage_records, subagent_id=subagent_id
        )
