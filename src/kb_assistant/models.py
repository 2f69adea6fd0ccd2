from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class AskRequest:
    question: str
    source_filter: tuple[str, ...] | None
    allow_fallback: bool
    session_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "sourceFilter": list(self.source_filter) if self.source_filter else None,
            "allowFallback": self.allow_fallback,
            "sessionId": self.session_id,
        }


@dataclass(frozen=True)
class Citation:
    document_title: str
    location: str
    snippet: str


@dataclass(frozen=True)
class AskResult:
    answer: str
    citations: list[Citation]
    confidence: float
    confidence_label: str
    provider: str
    trace_id: str
    latency_ms: int
    sensitivity: str


class AskPhase(str, Enum):
    IDLE = "Idle"
    PENDING = "Pending"
    SUCCESS = "Success"
    ERROR = "Error"


@dataclass(frozen=True)
class AskState:
    phase: AskPhase = AskPhase.IDLE
    result: AskResult | None = None
    message: str | None = None

    @property
    def display_text(self) -> str:
        if self.phase is AskPhase.PENDING:
            return "..."
        if self.phase is AskPhase.SUCCESS and self.result is not None:
            return self.result.answer
        if self.phase is AskPhase.ERROR:
            return self.message or ""
        return "Waiting for input..."


class SourceKind(str, Enum):
    FILE = "file"
    URL = "url"
    TEXT_NOTE = "text-note"


class JobStatus(str, Enum):
    QUEUED = "Queued"
    IN_FLIGHT = "InFlight"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


@dataclass(frozen=True)
class FilePayload:
    name: str
    data: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class NotePayload:
    content: str
    title: str | None = None
    tags: tuple[str, ...] = ()


@dataclass
class UploadJob:
    source_kind: SourceKind
    payload: Any
    status: JobStatus = JobStatus.QUEUED
    error_message: str | None = None

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


@dataclass(frozen=True)
class Document:
    id: int
    title: str
    content_type: str
    content_hash: str = ""
    raw_content: str = ""
    metadata_json: str = ""
    indexed_at: str | None = None
    updated_at: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Chunk:
    id: int | None
    document_id: int
    chunk_index: int
    content: str
    heading: str | None = None
    page_number: int | None = None
    token_count: int | None = None


@dataclass(frozen=True)
class DocumentWithChunks:
    document: Document
    chunks: list[Chunk] = field(default_factory=list)


@dataclass(frozen=True)
class WatcherSnapshot:
    enabled: bool
    root: str
    processed_root: str
    recursive: bool
    poll_interval: str
    last_scan_start: int = 0
    last_scan_end: int = 0
    scanned: int = 0
    ingested: int = 0
    failed: int = 0


@dataclass(frozen=True)
class WatcherUnavailable:
    message: str
