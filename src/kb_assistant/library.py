from __future__ import annotations

import logging

from kb_assistant.api import KnowledgeBaseClient
from kb_assistant.cache import RecentDocumentsCache
from kb_assistant.models import Document, DocumentWithChunks

logger = logging.getLogger(__name__)

MAX_RECENT = 50


class DocumentLibrary:
    """Read side of the knowledge base: recent list, document viewer, delete."""

    def __init__(self, client: KnowledgeBaseClient, limit: int = 10) -> None:
        self._client = client
        self.limit = max(1, min(limit, MAX_RECENT))
        self.recent = RecentDocumentsCache(lambda: self._client.recent_documents(self.limit))

    async def recent_documents(self) -> list[Document]:
        return await self.recent.get()

    async def open(self, document_id: int) -> DocumentWithChunks:
        found = await self._client.get_document(document_id)
        chunks = sorted(found.chunks, key=lambda chunk: chunk.chunk_index)
        logger.info("opened document %s with %d chunk(s)", document_id, len(chunks))
        return DocumentWithChunks(document=found.document, chunks=chunks)

    async def delete(self, document_id: int) -> None:
        await self._client.delete_document(document_id)
        logger.info("deleted document %s", document_id)
        self.recent.invalidate()
