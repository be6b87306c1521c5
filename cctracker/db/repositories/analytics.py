"""Read-side aggregation over sessions, usage records and exchanges.

Costs depend on per-record context size (long-context tiers), so rows are
fetched with SQL filters and rolled up in Python.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import aiosqlite

from cctracker import config
from cctracker.date_utils import date_part, month_part, parse_iso
from cctracker.db.repositories.sessions import ORPHAN_SUBAGENT_PREFIX
from cctracker.models import TokenCounts
from cctracker.pricing import record_cost, record_cost_without_cache

logger = logging.getLogger("cctracker.db.analytics")

_TOP_LEVEL = f"s.external_id NOT LIKE '{ORPHAN_SUBAGENT_PREFIX}%'"


@dataclass
class DurationBlocks:
    wall_clock_seconds: float = 0.0
    active_seconds: float = 0.0
    block_count: int = 0


def compute_duration_blocks(
    turns: Iterable[Mapping[str, Any]],
    gap_seconds: float = config.BLOCK_GAP_SECONDS,
) -> DurationBlocks:
    """Group turns into activity blocks and total their wall-clock and active time.

    A new block starts when the idle gap between one turn's end and the next
    turn's start exceeds ``gap_seconds``. Wall-clock time is the sum of each
    block's span (latest end minus first start); active time is the sum of
    the turns' own durations.
    """
    spans: list[tuple[Any, Any]] = []
    result = DurationBlocks()
    for turn in turns:
        duration = turn.get("duration_seconds")
        if duration is not None:
            result.active_seconds += float(duration)
        start = parse_iso(turn.get("user_timestamp"))
        if start is None:
            continue
        end = parse_iso(turn.get("assistant_timestamp"))
        if end is None or end < start:
            end = start
        spans.append((start, end))

    # sort() is stable, so equal start times keep their input order.
    spans.sort(key=lambda span: span[0])

    block_start = block_end = previous_end = None
    for start, end in spans:
        if block_start is not None and (start - previous_end).total_seconds() > gap_seconds:
            result.wall_clock_seconds += (block_end - block_start).total_seconds()
            block_start = None
        if block_start is None:
            block_start, block_end = start, end
            result.block_count += 1
        else:
            block_end = max(block_end, end)
        previous_end = end
    if block_start is not None:
        result.wall_clock_seconds += (block_end - block_start).total_seconds()
    return result


@dataclass
class _Totals:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    cost_usd: float = 0.0
    cost_without_cache_usd: float = 0.0
    message_count: int = 0
    session_ids: set = field(default_factory=set)

    def add(self, row: Mapping[str, Any]) -> None:
        tokens = TokenCounts(
            input_tokens=row["input_tokens"] or 0,
            output_tokens=row["output_tokens"] or 0,
            cache_creation_input_tokens=row["cache_creation_input_tokens"] or 0,
            cache_read_input_tokens=row["cache_read_input_tokens"] or 0,
        )
        self.input_tokens += tokens.input_tokens
        self.output_tokens += tokens.output_tokens
        self.cache_creation_tokens += tokens.cache_creation_input_tokens
        self.cache_read_tokens += tokens.cache_read_input_tokens
        self.cost_usd += record_cost(row["model"], tokens)
        self.cost_without_cache_usd += record_cost_without_cache(row["model"], tokens)
        self.message_count += 1
        self.session_ids.add(row["session_id"])

    def token_fields(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "cacheCreationTokens": self.cache_creation_tokens,
            "cacheReadTokens": self.cache_read_tokens,
            "outputTokens": self.output_tokens,
        }


def _session_filters(
    date_from: str | None = None,
    date_to: str | None = None,
    project: str | None = None,
    custom_title: str | None = None,
    top_level_only: bool = True,
) -> tuple[list[str], list[Any]]:
    conditions: list[str] = [_TOP_LEVEL] if top_level_only else []
    params: list[Any] = []
    if date_from:
        conditions.append("date(s.start_time) >= ?")
        params.append(date_from)
    if date_to:
        conditions.append("date(s.start_time) <= ?")
        params.append(date_to)
    if project:
        conditions.append("s.project = ?")
        params.append(project)
    if custom_title:
        conditions.append("s.custom_title = ?")
        params.append(custom_title)
    return conditions, params


def _where(conditions: list[str]) -> str:
    return " WHERE " + " AND ".join(conditions) if conditions else ""


class SqliteAnalyticsRepository:
    """Aggregated usage and cost statistics."""

    def __init__(self, db: aiosqlite.Connection, gap_seconds: float = config.BLOCK_GAP_SECONDS):
        self.db = db
        self.gap_seconds = gap_seconds

    async def _query_rows(self, query: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        async with self.db.execute(query, tuple(params)) as cur:
            return [dict(row) for row in await cur.fetchall()]

    async def _exchanges_by_session(self, conditions: list[str], params: list[Any]) -> dict[int, list[dict]]:
        rows = await self._query_rows(
            f"""SELECT e.session_id, e.user_timestamp, e.assistant_timestamp, e.duration_seconds
                FROM exchanges e JOIN sessions s ON s.id = e.session_id{_where(conditions)}
                ORDER BY e.session_id, e.id""",
            params,
        )
        grouped: dict[int, list[dict]] = defaultdict(list)
        for row in rows:
            grouped[row["session_id"]].append(row)
        return grouped

    async def get_session_stats(
        self,
        date_from: str | None = None,
        date_to: str | None = None,
        project: str | None = None,
        custom_title: str | None = None,
    ) -> list[dict[str, Any]]:
        conditions, params = _session_filters(date_from, date_to, project, custom_title)
        sessions = await self._query_rows(
            f"""SELECT s.*,
                    (SELECT COUNT(*) FROM subagents sa WHERE sa.session_id = s.id) AS subagent_count
                FROM sessions s{_where(conditions)}
                ORDER BY s.start_time DESC, s.id DESC""",
            params,
        )
        usage_rows = await self._query_rows(
            f"""SELECT u.* FROM usage_records u
                JOIN sessions s ON s.id = u.session_id{_where(conditions)}""",
            params,
        )
        totals: dict[int, _Totals] = defaultdict(_Totals)
        for row in usage_rows:
            totals[row["session_id"]].add(row)
        exchanges = await self._exchanges_by_session(conditions, params)

        results = []
        for session in sessions:
            session_totals = totals.get(session["id"], _Totals())
            session_turns = exchanges.get(session["id"], [])
            durations = compute_duration_blocks(session_turns, self.gap_seconds)
            results.append(
                {
                    "id": session["id"],
                    "externalId": session["external_id"],
                    "project": session["project"],
                    "customTitle": session["custom_title"],
                    "model": session["model"],
                    "version": session["version"],
                    "startTime": session["start_time"],
                    "endTime": session["end_time"],
                    **session_totals.token_fields(),
                    "estimatedCostUsd": session_totals.cost_usd,
                    "messageCount": session_totals.message_count,
                    "subagentCount": session["subagent_count"],
                    "exchangeCount": len(session_turns),
                    "wallClockSeconds": durations.wall_clock_seconds,
                    "activeSeconds": durations.active_seconds,
                }
            )
        return results

    async def _usage_rows(
        self,
        date_from: str | None = None,
        date_to: str | None = None,
        project: str | None = None,
        custom_title: str | None = None,
    ) -> list[dict[str, Any]]:
        conditions, params = _session_filters(
            project=project, custom_title=custom_title, top_level_only=False
        )
        if date_from:
            conditions.append("date(u.timestamp) >= ?")
            params.append(date_from)
        if date_to:
            conditions.append("date(u.timestamp) <= ?")
            params.append(date_to)
        return await self._query_rows(
            f"""SELECT u.* FROM usage_records u
                JOIN sessions s ON s.id = u.session_id{_where(conditions)}
                ORDER BY u.timestamp, u.id""",
            params,
        )

    async def get_daily_stats(
        self,
        date_from: str | None = None,
        date_to: str | None = None,
        project: str | None = None,
        custom_title: str | None = None,
    ) -> list[dict[str, Any]]:
        buckets: dict[str, _Totals] = defaultdict(_Totals)
        for row in await self._usage_rows(date_from, date_to, project, custom_title):
            day = date_part(row["timestamp"])
            if day is None:
                continue
            buckets[day].add(row)
        return [
            {
                "date": day,
                **totals.token_fields(),
                "costUsd": totals.cost_usd,
                "sessionCount": len(totals.session_ids),
                "messageCount": totals.message_count,
            }
            for day, totals in sorted(buckets.items(), reverse=True)
        ]

    async def get_monthly_costs(
        self,
        project: str | None = None,
        custom_title: str | None = None,
    ) -> list[dict[str, Any]]:
        buckets: dict[str, _Totals] = defaultdict(_Totals)
        for row in await self._usage_rows(project=project, custom_title=custom_title):
            month = month_part(row["timestamp"])
            if month is None:
                continue
            buckets[month].add(row)
        return [
            {
                "month": month,
                "apiCostUsd": totals.cost_usd,
                **totals.token_fields(),
                "sessionCount": len(totals.session_ids),
                "messageCount": totals.message_count,
            }
            for month, totals in sorted(buckets.items())
        ]

    async def get_summary(
        self,
        project: str | None = None,
        custom_title: str | None = None,
    ) -> dict[str, Any]:
        totals = _Totals()
        for row in await self._usage_rows(project=project, custom_title=custom_title):
            totals.add(row)

        conditions, params = _session_filters(project=project, custom_title=custom_title)
        session_rows = await self._query_rows(
            f"""SELECT COUNT(*) AS session_count,
                    MIN(s.start_time) AS first_session,
                    MAX(s.start_time) AS last_session
                FROM sessions s{_where(conditions)}""",
            params,
        )
        session_row = session_rows[0] if session_rows else {}

        wall_clock = active = 0.0
        for turns in (await self._exchanges_by_session(conditions, params)).values():
            durations = compute_duration_blocks(turns, self.gap_seconds)
            wall_clock += durations.wall_clock_seconds
            active += durations.active_seconds

        return {
            **totals.token_fields(),
            "totalCostUsd": totals.cost_usd,
            "costWithoutCacheUsd": totals.cost_without_cache_usd,
            "sessionCount": session_row.get("session_count") or 0,
            "firstSession": date_part(session_row.get("first_session")),
            "lastSession": date_part(session_row.get("last_session")),
            "totalWallClockSeconds": wall_clock,
            "totalActiveSeconds": active,
        }

    async def get_projects(self) -> list[str]:
        rows = await self._query_rows(
            f"""SELECT DISTINCT s.project FROM sessions s
                WHERE s.project IS NOT NULL AND {_TOP_LEVEL}
                ORDER BY s.project"""
        )
        return [row["project"] for row in rows]

    async def get_custom_titles(self) -> list[str]:
        rows = await self._query_rows(
            f"""SELECT DISTINCT s.custom_title FROM sessions s
                WHERE s.custom_title IS NOT NULL AND s.custom_title != '' AND {_TOP_LEVEL}
                ORDER BY s.custom_title"""
        )
        return [row["custom_title"] for row in rows]

    async def get_subagents_for_session(self, session_id: int) -> list[dict[str, Any]]:
        subagents = await self._query_rows(
            "SELECT * FROM subagents WHERE session_id = ? ORDER BY start_time, id",
            (session_id,),
        )
        usage_rows = await self._query_rows(
            "SELECT * FROM usage_records WHERE session_id = ? AND subagent_id IS NOT NULL",
            (session_id,),
        )
        totals: dict[int, _Totals] = defaultdict(_Totals)
        for row in usage_rows:
            totals[row["subagent_id"]].add(row)
        results = []
        for subagent in subagents:
            subagent_totals = totals.get(subagent["id"], _Totals())
            results.append(
                {
                    "id": subagent["id"],
                    "externalId": subagent["external_id"],
                    "type": subagent["type"],
                    "startTime": subagent["start_time"],
                    "endTime": subagent["end_time"],
                    **subagent_totals.token_fields(),
                    "estimatedCostUsd": subagent_totals.cost_usd,
                    "messageCount": subagent_totals.message_count,
                }
            )
        return results

    async def get_exchanges_for_session(self, session_id: int) -> list[dict[str, Any]]:
        rows = await self._query_rows(
            "SELECT * FROM exchanges WHERE session_id = ? ORDER BY user_timestamp, id",
            (session_id,),
        )
        return [
            {
                "id": row["id"],
                "userMessageId": row["user_message_id"],
                "userTimestamp": row["user_timestamp"],
                "userContent": row["user_content"],
                "assistantMessageId": row["assistant_message_id"],
                "assistantTimestamp": row["assistant_timestamp"],
                "durationSeconds": row["duration_seconds"],
            }
            for row in rows
        ]
