"""Parse assistant transcript JSONL into usage records and conversation turns."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from cctracker.date_utils import seconds_between, utc_now_iso
from cctracker.models import (
    Exchange,
    ParsedTranscript,
    TokenCounts,
    TranscriptMetadata,
    UsageRecord,
)

logger = logging.getLogger("cctracker.parser")

_SKIPPED_LINE_TYPES = {"file-history-snapshot"}
_USER_CONTENT_MAX_CHARS = 2000
_SQLITE_MAX_INTEGER = 2**63 - 1


def read_transcript(path: Path) -> str:
    """Read a transcript, tolerating a truncated multi-byte tail from a partial write."""
    return path.read_bytes().decode("utf-8", errors="replace")


def _coerce_int(value: Any) -> int:
    """Token count as a non-negative int that fits a SQLite INTEGER; anything else counts as 0."""
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if number < 0 or number > _SQLITE_MAX_INTEGER:
        return 0
    return number


def _token_counts(usage: dict[str, Any]) -> TokenCounts:
    return TokenCounts(
        input_tokens=_coerce_int(usage.get("input_tokens")),
        output_tokens=_coerce_int(usage.get("output_tokens")),
        cache_creation_input_tokens=_coerce_int(usage.get("cache_creation_input_tokens")),
        cache_read_input_tokens=_coerce_int(usage.get("cache_read_input_tokens")),
    )


def _message(entry: dict[str, Any]) -> dict[str, Any]:
    message = entry.get("message")
    return message if isinstance(message, dict) else {}


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _first_text_block(content: Any) -> str | None:
    if isinstance(content, str):
        return content.strip() or None
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str) and text.strip():
                    return text.strip()
    return None


def _is_assistant_response(entry: dict[str, Any]) -> bool:
    return entry.get("type") == "assistant" and _message(entry).get("role") == "assistant"


def _is_turn_candidate(entry: dict[str, Any]) -> bool:
    return not entry.get("isMeta") and not entry.get("isSidechain")


def _is_user_prompt(entry: dict[str, Any]) -> bool:
    """A real prompt typed by the user, as opposed to tool results echoed back as user lines."""
    if entry.get("type") != "user" or not _str_or_none(entry.get("timestamp")):
        return False
    message = _message(entry)
    if message.get("role") != "user":
        return False
    content = message.get("content")
    if isinstance(content, str):
        return bool(content.strip())
    if isinstance(content, list):
        block_types = {block.get("type") for block in content if isinstance(block, dict)}
        return "text" in block_types and "tool_result" not in block_types
    return False


class _TurnTracker:
    """Accumulates exchanges while walking a main-session transcript in file order."""

    def __init__(self) -> None:
        self.exchanges: list[Exchange] = []
        self._pending: dict[str, Any] | None = None

    def open(self, entry: dict[str, Any]) -> None:
        self.close()
        content = _first_text_block(_message(entry).get("content"))
        if content and len(content) > _USER_CONTENT_MAX_CHARS:
            content = content[:_USER_CONTENT_MAX_CHARS]
        self._pending = {
            "user_timestamp": entry["timestamp"],
            "user_message_id": _str_or_none(entry.get("uuid")),
            "user_content": content,
            "assistant_message_id": None,
            "assistant_timestamp": None,
        }

    def respond(self, entry: dict[str, Any]) -> None:
        timestamp = _str_or_none(entry.get("timestamp"))
        if self._pending is None or timestamp is None:
            return
        self._pending["assistant_timestamp"] = timestamp
        message_id = _str_or_none(_message(entry).get("id"))
        if message_id:
            self._pending["assistant_message_id"] = message_id

    def close(self) -> None:
        pending, self._pending = self._pending, None
        # Prompts that never got a response are dropped.
        if pending is None or pending["assistant_timestamp"] is None:
            return
        pending["duration_seconds"] = seconds_between(pending["user_timestamp"], pending["assistant_timestamp"])
        self.exchanges.append(Exchange(**pending))


def parse_transcript(content: str, session_external_id: str, is_subagent: bool = False) -> ParsedTranscript:
    """Extract deduplicated usage records, turns and session metadata from transcript text.

    Lines that are not valid JSON objects are skipped. Streamed responses repeat
    the same ``message.id`` with growing usage, so the last occurrence wins.
    Sub-agent transcripts never produce exchanges.
    """
    metadata = TranscriptMetadata()
    records: dict[str, UsageRecord] = {}
    turns = _TurnTracker()
    lines_total = 0
    lines_skipped = 0

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        lines_total += 1
        try:
            entry = json.loads(line)
        except (ValueError, RecursionError):
            # Also covers integer literals past the digit limit and overly deep nesting.
            lines_skipped += 1
            continue
        if not isinstance(entry, dict):
            lines_skipped += 1
            continue

        if entry.get("type") in _SKIPPED_LINE_TYPES:
            continue

        timestamp = _str_or_none(entry.get("timestamp"))
        if timestamp:
            if metadata.first_timestamp is None or timestamp < metadata.first_timestamp:
                metadata.first_timestamp = timestamp
            if metadata.last_timestamp is None or timestamp > metadata.last_timestamp:
                metadata.last_timestamp = timestamp

        if metadata.version is None:
            metadata.version = _str_or_none(entry.get("version"))
        if metadata.custom_title is None:
            metadata.custom_title = _str_or_none(entry.get("customTitle"))

        if _is_assistant_response(entry):
            message = _message(entry)
            message_id = _str_or_none(message.get("id"))
            usage = message.get("usage")
            if message_id and isinstance(usage, dict):
                model = _str_or_none(message.get("model"))
                if model and metadata.model is None:
                    metadata.model = model
                records[message_id] = UsageRecord(
                    external_id=message_id,
                    timestamp=timestamp or utc_now_iso(),
                    model=model,
                    tokens=_token_counts(usage),
                )

        if is_subagent or not _is_turn_candidate(entry):
            continue
        if _is_user_prompt(entry):
            turns.open(entry)
        elif _is_assistant_response(entry):
            turns.respond(entry)

    turns.close()

    if lines_skipped:
        logger.debug("Skipped %d malformed line(s) in transcript %s", lines_skipped, session_external_id)

    return ParsedTranscript(
        session_external_id=session_external_id,
        is_subagent=is_subagent,
        usage_records=list(records.values()),
        exchanges=[] if is_subagent else turns.exchanges,
        metadata=metadata,
        lines_total=lines_total,
        lines_skipped=lines_skipped,
    )
