"""Per-session detail and management API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from cctracker.db.connection import transaction
from cctracker.db.repositories import SqliteAnalyticsRepository, SqliteSessionRepository
from cctracker.models import CustomTitlePatch
from cctracker.routers.deps import get_db

logger = logging.getLogger("cctracker.api")

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


async def _require_session(repo: SqliteSessionRepository, session_id: int) -> dict:
    session = await repo.get_by_id(session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


@sessions_router.get("/{session_id}/subagents")
async def get_session_subagents(session_id: int, request: Request):
    db = get_db(request)
    await _require_session(SqliteSessionRepository(db), session_id)
    subagents = await SqliteAnalyticsRepository(db).get_subagents_for_session(session_id)
    return {"subagents": subagents}


@sessions_router.get("/{session_id}/exchanges")
async def get_session_exchanges(session_id: int, request: Request):
    db = get_db(request)
    await _require_session(SqliteSessionRepository(db), session_id)
    exchanges = await SqliteAnalyticsRepository(db).get_exchanges_for_session(session_id)
    return {"exchanges": exchanges}


@sessions_router.patch("/{session_id}/title")
async def update_session_title(session_id: int, req: CustomTitlePatch, request: Request):
    """Replace the session's title; an empty title clears it."""
    db = get_db(request)
    repo = SqliteSessionRepository(db)
    await _require_session(repo, session_id)
    title = (req.customTitle or "").strip() or None
    async with transaction(db):
        await repo.update_custom_title(session_id, title)
    return {"ok": True, "id": session_id, "customTitle": title}


@sessions_router.delete("/{session_id}")
async def delete_session(session_id: int, request: Request):
    db = get_db(request)
    repo = SqliteSessionRepository(db)
    async with transaction(db):
        deleted = await repo.delete(session_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    logger.info("Deleted session %s", session_id)
    return {"ok": True, "id": session_id}
