from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Protocol

from kb_assistant.errors import KnowledgeBaseError, ServiceError
from kb_assistant.models import WatcherSnapshot, WatcherUnavailable

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Folder watcher is not available (sign-in required or feature disabled)."

WatcherResult = WatcherSnapshot | WatcherUnavailable


class WatcherClient(Protocol):
    async def watcher_status(self) -> WatcherSnapshot: ...

    async def trigger_scan(self) -> None: ...


def format_scan_time(value: int) -> str:
    if not value:
        return "never"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


class WatcherStatusPoller:
    """Keeps the latest folder-watcher snapshot, polled and on demand.

    Snapshots are replaced wholesale. A scan request is not awaited before
    the status refetch, so counters may still describe the previous run.
    """

    def __init__(self, client: WatcherClient, interval_seconds: float = 30.0) -> None:
        self._client = client
        self.interval_seconds = interval_seconds
        self.latest: WatcherResult | None = None
        self._listeners: list[Callable[[WatcherResult], None]] = []
        self._task: asyncio.Task[None] | None = None
        self._scans: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: Callable[[WatcherResult], None]) -> None:
        self._listeners.append(listener)

    async def fetch_status(self) -> WatcherResult:
        result: WatcherResult
        try:
            result = await self._client.watcher_status()
        except ServiceError as exc:
            if exc.status_code in (401, 403, 404):
                result = WatcherUnavailable(NOT_AVAILABLE)
            else:
                result = WatcherUnavailable(exc.detail)
            logger.info("watcher status unavailable: %s", exc.status_code)
        except KnowledgeBaseError as exc:
            result = WatcherUnavailable(exc.detail)
            logger.info("watcher status unavailable: %s", exc)

        self.latest = result
        for listener in list(self._listeners):
            listener(result)
        return result

    async def _scan(self) -> None:
        try:
            await self._client.trigger_scan()
        except KnowledgeBaseError as exc:
            logger.warning("watcher scan request failed: %s", exc)

    async def trigger_scan(self) -> WatcherResult:
        task = asyncio.ensure_future(self._scan())
        self._scans.add(task)
        task.add_done_callback(self._scans.discard)
        return await self.fetch_status()

    async def settle(self) -> None:
        """Wait for outstanding scan requests (used before a loop shuts down)."""
        if self._scans:
            await asyncio.gather(*self._scans, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await self.fetch_status()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.ensure_future(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
