from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence

from kb_assistant.errors import KnowledgeBaseError, ValidationError
from kb_assistant.models import (
    FilePayload,
    JobStatus,
    NotePayload,
    Notification,
    SourceKind,
    UploadJob,
)

logger = logging.getLogger(__name__)

SUCCESS_MESSAGES = {
    SourceKind.FILE: "File ingested successfully",
    SourceKind.URL: "URL ingested successfully",
    SourceKind.TEXT_NOTE: "Note saved to knowledge base",
}


class IngestClient(Protocol):
    async def ingest_file(self, payload: FilePayload) -> str: ...

    async def ingest_url(self, url: str) -> str: ...

    async def ingest_note(self, payload: NotePayload) -> str: ...


class Invalidator(Protocol):
    def invalidate(self) -> None: ...


def accepts(kind: SourceKind, payload: Any) -> bool:
    if kind is SourceKind.FILE:
        return isinstance(payload, FilePayload) and bool(payload.data)
    if kind is SourceKind.URL:
        return isinstance(payload, str) and bool(payload.strip())
    if kind is SourceKind.TEXT_NOTE:
        return isinstance(payload, NotePayload) and bool(payload.content.strip())
    return False


class UploadDispatcher:
    """Runs ingestion jobs for files, URLs and text notes.

    Whatever the outcome, the recent-documents cache is invalidated once per
    job before the job counts as finished, then a notification is emitted.
    """

    def __init__(
        self,
        client: IngestClient,
        recent: Invalidator,
        notify: Callable[[Notification], None] | None = None,
    ) -> None:
        self._client = client
        self._recent = recent
        self._notify = notify or (lambda notification: None)
        self.active_jobs: list[UploadJob] = []

    @property
    def busy(self) -> bool:
        return bool(self.active_jobs)

    async def _send(self, job: UploadJob) -> None:
        if job.source_kind is SourceKind.FILE:
            await self._client.ingest_file(job.payload)
        elif job.source_kind is SourceKind.URL:
            await self._client.ingest_url(job.payload.strip())
        else:
            await self._client.ingest_note(job.payload)

    async def dispatch(self, kind: SourceKind, payload: Any) -> UploadJob:
        if not accepts(kind, payload):
            raise ValidationError(f"Nothing to ingest for {kind.value}")

        job = UploadJob(source_kind=kind, payload=payload)
        self.active_jobs.append(job)
        job.status = JobStatus.IN_FLIGHT
        logger.info("ingest %s started", kind.value)
        try:
            await self._send(job)
        except KnowledgeBaseError as exc:
            job.status = JobStatus.FAILED
            job.error_message = exc.detail
            logger.warning("ingest %s failed: %s", kind.value, job.error_message)
        else:
            job.status = JobStatus.SUCCEEDED
            logger.info("ingest %s succeeded", kind.value)

        # Failed uploads can still leave partial documents behind.
        self._recent.invalidate()
        try:
            if job.status is JobStatus.SUCCEEDED:
                self._notify(Notification("success", SUCCESS_MESSAGES[kind]))
            else:
                self._notify(Notification("error", f"Upload failed: {job.error_message}"))
        finally:
            self.active_jobs.remove(job)
        return job

    async def dispatch_files(self, files: Sequence[FilePayload]) -> UploadJob | None:
        if not files:
            return None
        if len(files) > 1:
            logger.debug("only the first of %d dropped files is ingested", len(files))
        return await self.dispatch(SourceKind.FILE, files[0])
