from __future__ import annotations

import json
import logging
from typing import Any, Callable, TypeVar

import httpx

from kb_assistant.config import Settings
from kb_assistant.errors import ServiceError, TransportFailure
from kb_assistant.models import (
    AskRequest,
    AskResult,
    Chunk,
    Citation,
    Document,
    DocumentWithChunks,
    FilePayload,
    NotePayload,
    WatcherSnapshot,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Score assumed when the service only sends a HIGH/MEDIUM/LOW label.
_LABEL_SCORES = {"HIGH": 0.9, "MEDIUM": 0.7, "LOW": 0.4}


def _label_for(score: float) -> str:
    if score >= 0.80:
        return "HIGH"
    if score >= 0.60:
        return "MEDIUM"
    return "LOW"


def _normalize_confidence(raw: Any, label: Any) -> tuple[float, str]:
    score: float | None = None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        score = float(raw)
    elif isinstance(raw, str) and raw.strip():
        try:
            score = float(raw)
        except ValueError:
            label = label or raw
    if score is None:
        score = _LABEL_SCORES.get(str(label or "").strip().upper(), 0.5)
    score = max(0.0, min(1.0, score))
    text = str(label).strip().upper() if label else _label_for(score)
    return score, text


def _to_citation(item: dict[str, Any]) -> Citation:
    return Citation(
        document_title=str(item.get("documentTitle") or "unknown"),
        location=str(item.get("location") or ""),
        snippet=str(item.get("snippet") or ""),
    )


def _to_ask_result(data: dict[str, Any]) -> AskResult:
    confidence, label = _normalize_confidence(data.get("confidence"), data.get("confidenceLabel"))
    citations = data.get("citations") or []
    return AskResult(
        answer=str(data.get("answer") or ""),
        citations=[_to_citation(item) for item in citations if isinstance(item, dict)],
        confidence=confidence,
        confidence_label=label,
        provider=str(data.get("provider") or ""),
        trace_id=str(data.get("traceId") or ""),
        latency_ms=int(data.get("latencyMs") or 0),
        sensitivity=str(data.get("sensitivity") or "NONE"),
    )


def _to_document(data: dict[str, Any]) -> Document:
    metadata = data.get("metadataJson")
    if metadata is not None and not isinstance(metadata, str):
        metadata = json.dumps(metadata)
    return Document(
        id=int(data["id"]),
        title=str(data.get("title") or ""),
        content_type=str(data.get("contentType") or ""),
        content_hash=str(data.get("contentHash") or ""),
        raw_content=str(data.get("rawContent") or ""),
        metadata_json=metadata or "",
        indexed_at=data.get("indexedAt"),
        updated_at=data.get("updatedAt"),
        created_at=data.get("createdAt"),
    )


def _to_chunk(data: dict[str, Any]) -> Chunk:
    page = data.get("pageNumber")
    tokens = data.get("tokenCount")
    return Chunk(
        id=data.get("id"),
        document_id=int(data.get("documentId", 0)),
        chunk_index=int(data.get("chunkIndex", 0)),
        content=str(data.get("content") or ""),
        heading=data.get("heading"),
        page_number=int(page) if page is not None else None,
        token_count=int(tokens) if tokens is not None else None,
    )


def _to_documents(items: list[Any]) -> list[Document]:
    return [_to_document(item) for item in items if isinstance(item, dict)]


def _to_document_with_chunks(data: dict[str, Any]) -> DocumentWithChunks:
    chunks = data.get("chunks") or []
    return DocumentWithChunks(
        document=_to_document(data["document"]),
        chunks=[_to_chunk(item) for item in chunks if isinstance(item, dict)],
    )


def _to_watcher_snapshot(data: dict[str, Any]) -> WatcherSnapshot:
    return WatcherSnapshot(
        enabled=bool(data.get("enabled", False)),
        root=str(data.get("root") or ""),
        processed_root=str(data.get("processedRoot") or ""),
        recursive=bool(data.get("recursive", True)),
        poll_interval=str(data.get("pollInterval") or ""),
        last_scan_start=int(data.get("lastScanStart") or 0),
        last_scan_end=int(data.get("lastScanEnd") or 0),
        scanned=int(data.get("scanned") or 0),
        ingested=int(data.get("ingested") or 0),
        failed=int(data.get("failed") or 0),
    )


class KnowledgeBaseClient:
    """Async client for the knowledge-base service.

    A fresh ``httpx.AsyncClient`` is opened per call so one instance can be
    shared across event loops (Streamlit runs each action in its own loop).
    No client-side timeout is applied; the service owns timeouts.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = settings.api_base
        self._token = settings.api_token
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=None,
                transport=self._transport,
                headers=headers,
            ) as http:
                response = await http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportFailure(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            logger.info("%s %s -> %s", method, path, response.status_code)
            raise ServiceError(response.status_code, response.text)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceError(response.status_code, f"Malformed response: {response.text[:200]}") from exc

    @classmethod
    def _json_object(cls, response: httpx.Response) -> dict[str, Any]:
        data = cls._json(response)
        if not isinstance(data, dict):
            raise ServiceError(response.status_code, "Malformed response: expected an object")
        return data

    @staticmethod
    def _convert(response: httpx.Response, convert: Callable[[Any], T], data: Any) -> T:
        try:
            return convert(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("unreadable payload from %s: %r", response.url.path, exc)
            raise ServiceError(response.status_code, f"Malformed response: {exc!r}") from exc

    async def ask(self, request: AskRequest) -> AskResult:
        response = await self._request("POST", "/v1/ask", json=request.to_payload())
        return self._convert(response, _to_ask_result, self._json_object(response))

    async def ingest_file(self, payload: FilePayload) -> str:
        files = {"file": (payload.name, payload.data, payload.content_type)}
        response = await self._request("POST", "/v1/ingest/upload", files=files)
        return response.text

    async def ingest_url(self, url: str) -> str:
        response = await self._request("POST", "/v1/ingest/url", json={"url": url})
        return response.text

    async def ingest_note(self, payload: NotePayload) -> str:
        body = {"title": payload.title, "content": payload.content, "tags": list(payload.tags)}
        response = await self._request("POST", "/v1/ingest/note", json=body)
        return response.text

    async def recent_documents(self, limit: int = 10) -> list[Document]:
        response = await self._request("GET", "/v1/ingest/recent", params={"limit": limit})
        data = self._json(response)
        if not isinstance(data, list):
            return []
        return self._convert(response, _to_documents, data)

    async def get_document(self, document_id: int) -> DocumentWithChunks:
        response = await self._request("GET", f"/v1/ingest/document/{document_id}")
        return self._convert(response, _to_document_with_chunks, self._json_object(response))

    async def delete_document(self, document_id: int) -> None:
        await self._request("DELETE", f"/v1/ingest/document/{document_id}")

    async def watcher_status(self) -> WatcherSnapshot:
        response = await self._request("GET", "/v1/watcher/status")
        return self._convert(response, _to_watcher_snapshot, self._json_object(response))

    async def trigger_scan(self) -> None:
        await self._request("POST", "/v1/watcher/scan")
