"""Timestamp parsing helpers shared by the parser and aggregation queries."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def parse_iso(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (with optional trailing ``Z``) into an aware datetime."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def seconds_between(start: Any, end: Any) -> float | None:
    """Return ``end - start`` in seconds, or None when either side is unusable or the span is negative."""
    start_dt = parse_iso(start)
    end_dt = parse_iso(end)
    if start_dt is None or end_dt is None:
        return None
    delta = (end_dt - start_dt).total_seconds()
    if delta < 0:
        return None
    return delta


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def date_part(value: Any) -> str | None:
    """``2026-01-15T10:00:00Z`` -> ``2026-01-15`` (UTC)."""
    parsed = parse_iso(value)
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).date().isoformat()


def month_part(value: Any) -> str | None:
    day = date_part(value)
    return day[:7] if day else None
