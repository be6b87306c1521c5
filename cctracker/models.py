"""Pydantic models for parsed transcripts, sync results and API payloads."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ── Parser value objects ────────────────────────────────────────────

class TokenCounts(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def context_tokens(self) -> int:
        """Everything that counts toward the prompt context window."""
        return self.input_tokens + self.cache_creation_input_tokens + self.cache_read_input_tokens


class UsageRecord(BaseModel):
    external_id: str
    timestamp: str
    model: Optional[str] = None
    tokens: TokenCounts = Field(default_factory=TokenCounts)


class Exchange(BaseModel):
    user_timestamp: str
    user_message_id: Optional[str] = None
    user_content: Optional[str] = None
    assistant_message_id: Optional[str] = None
    assistant_timestamp: Optional[str] = None
    duration_seconds: Optional[float] = None


class TranscriptMetadata(BaseModel):
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None
    custom_title: Optional[str] = None


class ParsedTranscript(BaseModel):
    session_external_id: str
    is_subagent: bool = False
    usage_records: list[UsageRecord] = Field(default_factory=list)
    exchanges: list[Exchange] = Field(default_factory=list)
    metadata: TranscriptMetadata = Field(default_factory=TranscriptMetadata)
    lines_total: int = 0
    lines_skipped: int = 0


# ── Persistence inputs ──────────────────────────────────────────────

class SessionUpsert(BaseModel):
    external_id: str
    project: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None
    custom_title: Optional[str] = None


# ── Sync results ────────────────────────────────────────────────────

class SyncFileResult(BaseModel):
    session_external_id: str
    usage_records_imported: int = 0
    exchanges_imported: int = 0
    project: Optional[str] = None


class SyncAllResult(BaseModel):
    sessions_imported: int = 0
    usage_records_imported: int = 0
    files_scanned: int = 0
    files_failed: int = 0


# ── API payloads ────────────────────────────────────────────────────

class SyncRequest(BaseModel):
    transcriptPath: str = Field(..., min_length=1)
    incremental: bool = True


class SyncResponse(BaseModel):
    success: bool = True
    sessionExternalId: str
    usageRecordsImported: int = 0
    exchangesImported: int = 0
    project: Optional[str] = None


class SyncAllResponse(BaseModel):
    success: bool = True
    sessionsImported: int = 0
    usageRecordsImported: int = 0
    filesScanned: int = 0
    filesFailed: int = 0


class CustomTitlePatch(BaseModel):
    customTitle: Optional[str] = None


class SubscriptionStartDate(BaseModel):
    date: Optional[str] = None
