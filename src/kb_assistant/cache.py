from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from kb_assistant.models import Document

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[list[Document]]]


def _consume_failure(task: asyncio.Task[list[Document]]) -> None:
    # invalidate() may drop the only reference to a refetch that later fails.
    if not task.cancelled() and task.exception() is not None:
        logger.warning("recent documents refetch failed: %s", task.exception())


class RecentDocumentsCache:
    """Invalidate-then-refetch cache for the recent-documents list.

    Entries are never patched in place: writers call `invalidate()` and the
    next `get()` refetches the whole list.
    """

    def __init__(self, loader: Loader) -> None:
        self._loader = loader
        self._items: list[Document] | None = None
        self._refetch: asyncio.Task[list[Document]] | None = None
        self._listeners: list[Callable[[], None]] = []
        self.invalidations = 0

    @property
    def stale(self) -> bool:
        return self._items is None

    def peek(self) -> list[Document]:
        return list(self._items or [])

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def invalidate(self) -> None:
        self._items = None
        self._refetch = None
        self.invalidations += 1
        logger.debug("recent documents invalidated (%d)", self.invalidations)
        for listener in list(self._listeners):
            listener()

    async def get(self) -> list[Document]:
        if self._items is not None:
            return list(self._items)
        if self._refetch is None or self._refetch.done():
            self._refetch = asyncio.ensure_future(self._load(self.invalidations))
            self._refetch.add_done_callback(_consume_failure)
        # One cancelled reader must not cancel the refetch the others share.
        return list(await asyncio.shield(self._refetch))

    async def _load(self, generation: int) -> list[Document]:
        items = await self._loader()
        # A refetch that raced with an invalidation must not repopulate.
        if generation == self.invalidations:
            self._items = items
        return items
