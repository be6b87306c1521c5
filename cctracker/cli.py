#!/usr/bin/env python3
"""Command-line entry point.

Usage:
  cctracker sync ~/.claude/projects/-Users-me-app/abc-123.jsonl
  cctracker sync --full ~/.claude/projects/-Users-me-app/abc-123.jsonl
  cctracker sync              # incremental pass over every transcript
  cctracker sync-all          # full resync of every transcript
  cctracker serve --port 3000
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from cctracker import config
from cctracker.db import connection, sqlite_migrations
from cctracker.db.sync_engine import SyncEngine, SyncError


async def _open_engine(db_path: Path, projects_dir: Path):
    db = await connection.connect(db_path)
    await sqlite_migrations.run_migrations(db)
    return db, SyncEngine(db, projects_dir)


async def _run_sync(db_path: Path, projects_dir: Path, transcript: str | None, full: bool) -> int:
    db, engine = await _open_engine(db_path, projects_dir)
    try:
        if transcript:
            try:
                result = await engine.sync_file(Path(transcript).expanduser(), incremental=not full)
            except (FileNotFoundError, SyncError) as e:
                print(f"Error: {e}")
                return 1
            print(
                f"{result.session_external_id}: usage_records={result.usage_records_imported} "
                f"exchanges={result.exchanges_imported} project={result.project or '-'}"
            )
            return 0

        if not projects_dir.exists():
            print(f"Projects directory not found: {projects_dir}")
            return 1
        stats = await engine.sync_changed_files(sorted(projects_dir.rglob(f"*{config.TRANSCRIPT_SUFFIX}")))
        print(
            f"files_synced={stats['files']} usage_records={stats['usage_records']} "
            f"failed={stats['failed']}"
        )
        return 0
    finally:
        await connection.close(db)


async def _run_sync_all(db_path: Path, projects_dir: Path) -> int:
    db, engine = await _open_engine(db_path, projects_dir)
    try:
        result = await engine.sync_all()
    finally:
        await connection.close(db)
    print(
        f"sessions_imported={result.sessions_imported} usage_records={result.usage_records_imported} "
        f"files_scanned={result.files_scanned} files_failed={result.files_failed}"
    )
    return 0


def _serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("cctracker.main:app", host=host, port=port, log_level=config.LOG_LEVEL.lower())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="cctracker", description="Track assistant token usage and cost")
    parser.add_argument("--db", default=str(config.DB_PATH), help="SQLite database path")
    parser.add_argument(
        "--projects-dir",
        default=str(config.CLAUDE_PROJECTS_DIR),
        help="Root directory containing per-project transcript folders",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync one transcript, or incrementally sync all")
    sync_parser.add_argument("path", nargs="?", default=None, help="Transcript .jsonl file")
    sync_parser.add_argument("--full", action="store_true", help="Discard stored rows and re-read from the start")

    subparsers.add_parser("sync-all", help="Full resync of every transcript")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=config.HOST)
    serve_parser.add_argument("--port", type=int, default=config.PORT)

    args = parser.parse_args(argv)
    logging.basicConfig(level=config.LOG_LEVEL)

    db_path = Path(args.db).expanduser()
    projects_dir = Path(args.projects_dir).expanduser()
    if args.command == "sync":
        return asyncio.run(_run_sync(db_path, projects_dir, args.path, args.full))
    if args.command == "sync-all":
        return asyncio.run(_run_sync_all(db_path, projects_dir))
    return _serve(args.host, args.port)


if __name__ == "__main__":
    raise SystemExit(main())
