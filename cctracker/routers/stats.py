"""Usage and cost statistics API."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query, Request

from cctracker import config
from cctracker.db.repositories import SqliteAnalyticsRepository
from cctracker.routers.deps import get_db

stats_router = APIRouter(prefix="/api/stats", tags=["stats"])


def _analytics(request: Request) -> SqliteAnalyticsRepository:
    return SqliteAnalyticsRepository(get_db(request), gap_seconds=config.BLOCK_GAP_SECONDS)


@stats_router.get("/sessions")
async def get_sessions(
    request: Request,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    project: Optional[str] = None,
    custom_title: Optional[str] = Query(None, alias="customTitle"),
):
    """Top-level sessions with token totals, cost and durations."""
    sessions = await _analytics(request).get_session_stats(date_from, date_to, project, custom_title)
    return {"sessions": sessions}


@stats_router.get("/daily")
async def get_daily(
    request: Request,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    project: Optional[str] = None,
    custom_title: Optional[str] = Query(None, alias="customTitle"),
):
    daily = await _analytics(request).get_daily_stats(date_from, date_to, project, custom_title)
    return {"daily": daily}


@stats_router.get("/monthly")
async def get_monthly(
    request: Request,
    project: Optional[str] = None,
    custom_title: Optional[str] = Query(None, alias="customTitle"),
):
    monthly = await _analytics(request).get_monthly_costs(project, custom_title)
    return {"monthly": monthly}


@stats_router.get("/summary")
async def get_summary(
    request: Request,
    project: Optional[str] = None,
    custom_title: Optional[str] = Query(None, alias="customTitle"),
):
    return await _analytics(request).get_summary(project, custom_title)


@stats_router.get("/projects")
async def get_projects(request: Request):
    return {"projects": await _analytics(request).get_projects()}


@stats_router.get("/custom-titles")
async def get_custom_titles(request: Request):
    return {"customTitles": await _analytics(request).get_custom_titles()}
