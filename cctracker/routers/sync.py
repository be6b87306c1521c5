"""Transcript sync API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from cctracker.db.sync_engine import SubagentPathError
from cctracker.models import SyncAllResponse, SyncRequest, SyncResponse
from cctracker.routers.deps import get_sync_engine

logger = logging.getLogger("cctracker.api")

sync_router = APIRouter(prefix="/api/sync", tags=["sync"])


@sync_router.post("", response_model=SyncResponse)
async def sync_transcript(req: SyncRequest, request: Request):
    """Sync one transcript file (and its sub-agent transcripts)."""
    sync_engine = get_sync_engine(request)
    try:
        result = await sync_engine.sync_file(req.transcriptPath, incremental=req.incremental)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SubagentPathError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    logger.info(
        "Synced %s: %d usage records, %d exchanges",
        req.transcriptPath,
        result.usage_records_imported,
        result.exchanges_imported,
    )
    return SyncResponse(
        sessionExternalId=result.session_external_id,
        usageRecordsImported=result.usage_records_imported,
        exchangesImported=result.exchanges_imported,
        project=result.project,
    )


@sync_router.post("/all", response_model=SyncAllResponse)
async def sync_all_transcripts(request: Request):
    """Full resync of every transcript under the projects directory."""
    sync_engine = get_sync_engine(request)
    result = await sync_engine.sync_all()
    return SyncAllResponse(
        sessionsImported=result.sessions_imported,
        usageRecordsImported=result.usage_records_imported,
        filesScanned=result.files_scanned,
        filesFailed=result.files_failed,
    )
