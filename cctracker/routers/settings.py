"""Application settings API."""
from __future__ import annotations

import re

from fastapi import APIRouter, HTTPException, Request

from cctracker.db.connection import transaction
from cctracker.db.repositories import SqliteSettingsRepository
from cctracker.db.repositories.settings import SUBSCRIPTION_START_DATE
from cctracker.models import SubscriptionStartDate
from cctracker.routers.deps import get_db

settings_router = APIRouter(prefix="/api/settings", tags=["settings"])

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@settings_router.get("")
async def get_settings(request: Request):
    return await SqliteSettingsRepository(get_db(request)).get_all()


@settings_router.put("/subscription-start-date")
async def set_subscription_start_date(req: SubscriptionStartDate, request: Request):
    """Store the billing-cycle anchor date (``YYYY-MM-DD``); empty or null clears it."""
    db = get_db(request)
    repo = SqliteSettingsRepository(db)
    value = (req.date or "").strip() or None
    if value is not None and not _DATE_RE.match(value):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")
    async with transaction(db):
        await repo.set(SUBSCRIPTION_START_DATE, value)
    return {"ok": True, "date": value}
