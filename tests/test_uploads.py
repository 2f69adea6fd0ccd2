from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from kb_assistant.api import KnowledgeBaseClient
from kb_assistant.config import Settings
from kb_assistant.errors import ServiceError, TransportFailure, ValidationError
from kb_assistant.models import FilePayload, JobStatus, NotePayload, Notification, SourceKind
from kb_assistant.uploads import UploadDispatcher, accepts


class FakeIngestClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, object]] = []

    async def _record(self, kind: str, payload: object) -> str:
        self.calls.append((kind, payload))
        if self.error is not None:
            raise self.error
        return "42"

    async def ingest_file(self, payload: FilePayload) -> str:
        return await self._record("file", payload)

    async def ingest_url(self, url: str) -> str:
        return await self._record("url", url)

    async def ingest_note(self, payload: NotePayload) -> str:
        return await self._record("note", payload)


class CountingCache:
    def __init__(self) -> None:
        self.invalidations = 0

    def invalidate(self) -> None:
        self.invalidations += 1


def _dispatcher(client: FakeIngestClient) -> tuple[UploadDispatcher, CountingCache, list[Notification]]:
    cache = CountingCache()
    notes: list[Notification] = []
    return UploadDispatcher(client, cache, notify=notes.append), cache, notes


def test_file_upload_success_invalidates_once_and_notifies() -> None:
    client = FakeIngestClient()
    dispatcher, cache, notes = _dispatcher(client)
    payload = FilePayload(name="notes.pdf", data=b"%PDF-1.7", content_type="application/pdf")

    job = asyncio.run(dispatcher.dispatch(SourceKind.FILE, payload))

    assert job.status is JobStatus.SUCCEEDED
    assert job.error_message is None
    assert cache.invalidations == 1
    assert notes == [Notification("success", "File ingested successfully")]
    assert client.calls == [("file", payload)]
    assert dispatcher.active_jobs == []


def test_service_error_body_becomes_failure_message() -> None:
    client = FakeIngestClient(ServiceError(500, "Unsupported file type: .exe"))
    dispatcher, cache, notes = _dispatcher(client)

    job = asyncio.run(dispatcher.dispatch(SourceKind.FILE, FilePayload(name="a.exe", data=b"MZ")))

    assert job.status is JobStatus.FAILED
    assert job.error_message == "Unsupported file type: .exe"
    assert cache.invalidations == 1
    assert notes == [Notification("error", "Upload failed: Unsupported file type: .exe")]


def test_transport_failure_is_treated_like_service_error() -> None:
    client = FakeIngestClient(TransportFailure("Connection refused"))
    dispatcher, cache, notes = _dispatcher(client)

    job = asyncio.run(dispatcher.dispatch(SourceKind.URL, "https://example.com/post"))

    assert job.status is JobStatus.FAILED
    assert job.error_message == "Connection refused"
    assert cache.invalidations == 1
    assert notes[0].level == "error"


def test_status_passes_through_in_flight() -> None:
    seen: list[JobStatus] = []

    class WatchingClient(FakeIngestClient):
        async def ingest_note(self, payload: NotePayload) -> str:
            seen.append(dispatcher.active_jobs[0].status)
            return await super().ingest_note(payload)

    client = WatchingClient()
    dispatcher, cache, _ = _dispatcher(client)
    note = NotePayload(content="call the bank", title="todo", tags=("errand",))

    job = asyncio.run(dispatcher.dispatch(SourceKind.TEXT_NOTE, note))

    assert seen == [JobStatus.IN_FLIGHT]
    assert job.status is JobStatus.SUCCEEDED
    assert client.calls == [("note", note)]


def test_only_first_dropped_file_is_ingested() -> None:
    client = FakeIngestClient()
    dispatcher, cache, _ = _dispatcher(client)
    files = [FilePayload(name="one.txt", data=b"1"), FilePayload(name="two.txt", data=b"2")]

    job = asyncio.run(dispatcher.dispatch_files(files))

    assert job is not None
    assert [payload.name for _, payload in client.calls] == ["one.txt"]
    assert cache.invalidations == 1


def test_empty_drop_dispatches_nothing() -> None:
    client = FakeIngestClient()
    dispatcher, cache, _ = _dispatcher(client)

    assert asyncio.run(dispatcher.dispatch_files([])) is None
    assert client.calls == []
    assert cache.invalidations == 0


@pytest.mark.parametrize(
    ("kind", "payload"),
    [
        (SourceKind.FILE, FilePayload(name="empty.txt", data=b"")),
        (SourceKind.URL, "   "),
        (SourceKind.TEXT_NOTE, NotePayload(content="  ")),
        (SourceKind.TEXT_NOTE, "not a note payload"),
    ],
)
def test_invalid_payloads_are_rejected_before_dispatch(kind: SourceKind, payload: object) -> None:
    client = FakeIngestClient()
    dispatcher, cache, notes = _dispatcher(client)

    assert not accepts(kind, payload)
    with pytest.raises(ValidationError):
        asyncio.run(dispatcher.dispatch(kind, payload))
    assert client.calls == []
    assert cache.invalidations == 0
    assert notes == []


def test_undecodable_response_still_fails_the_job() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    settings = Settings(
        api_base="http://kb.test",
        api_token=None,
        recent_limit=10,
        watcher_poll_seconds=30,
        dictation_language="en-US",
        state_file=Path("state.json"),
        widget_margin=16,
        log_level="INFO",
    )
    client = KnowledgeBaseClient(settings, transport=httpx.MockTransport(handler))
    cache = CountingCache()
    notes: list[Notification] = []
    dispatcher = UploadDispatcher(client, cache, notify=notes.append)

    job = asyncio.run(dispatcher.dispatch(SourceKind.URL, "https://example.com/post"))

    assert job.status is JobStatus.FAILED
    assert dispatcher.active_jobs == []
    assert not dispatcher.busy
    assert cache.invalidations == 1
    assert [note.level for note in notes] == ["error"]
