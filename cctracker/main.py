"""cctracker FastAPI backend: main application entry point."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cctracker import config
from cctracker.db import connection, sqlite_migrations
from cctracker.db.file_watcher import file_watcher
from cctracker.db.sync_engine import SyncEngine
from cctracker.routers.sessions import sessions_router
from cctracker.routers.settings import settings_router
from cctracker.routers.stats import stats_router
from cctracker.routers.sync import sync_router

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("cctracker")


def _log_startup_sync_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Initial transcript sync failed", exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("cctracker backend starting up")

    # 1. Initialize DB connection
    db = await connection.connect(config.DB_PATH)
    app.state.db = db

    # 2. Run migrations
    await sqlite_migrations.run_migrations(db)

    # 3. Initialize Sync Engine
    sync = SyncEngine(db, config.CLAUDE_PROJECTS_DIR)
    app.state.sync_engine = sync

    # 4. Initial sync in the background so startup is not blocked
    if config.STARTUP_SYNC:
        logger.info("Starting initial transcript sync...")
        app.state.sync_task = asyncio.create_task(sync.sync_all())
        app.state.sync_task.add_done_callback(_log_startup_sync_failure)

    # 5. Start File Watcher
    if config.WATCH_ENABLED:
        await file_watcher.start(sync, config.CLAUDE_PROJECTS_DIR)

    yield

    logger.info("cctracker backend shutting down")

    sync_task = getattr(app.state, "sync_task", None)
    if sync_task is not None:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass
        except Exception:
            pass  # reported by _log_startup_sync_failure

    await file_watcher.stop()
    await connection.close(db)
    app.state.db = None


app = FastAPI(
    title="cctracker API",
    description="Token usage and cost statistics for assistant transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        f"http://localhost:{config.PORT}",
        f"http://127.0.0.1:{config.PORT}",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sync_router)
app.include_router(stats_router)
app.include_router(sessions_router)
app.include_router(settings_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if getattr(app.state, "db", None) is not None else "disconnected",
        "watcher": "running" if file_watcher.is_running else "stopped",
    }
