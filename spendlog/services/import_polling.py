"""
Fixed-interval status polling for statement imports

A poller is an asyncio task owned by whoever observes the import (an SSE
stream, a CLI wait loop). It stops by itself once the status no longer needs
polling, and its owner cancels it when the observer goes away.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from spendlog.config import settings
from spendlog.models.statement_import import ImportStatus

logger = logging.getLogger(__name__)

POLLING_STATUSES = frozenset({
    ImportStatus.PENDING,
    ImportStatus.PROCESSING,
    ImportStatus.CATEGORIZING,
})

def next_poll_delay(status) -> Optional[int]:
    """Milliseconds until the next fetch, or None to stop polling"""
    if ImportStatus(status) in POLLING_STATUSES:
        return settings.IMPORT_POLL_INTERVAL_MS
    return None

class ImportStatusPoller:
    """
    Polls ``fetch()`` and hands each snapshot to ``on_update``.

    ``fetch`` returns any object with a ``status`` attribute (or a dict with a
    ``status`` key).
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        on_update: Callable[[Any], Awaitable[None]],
        interval_ms: Optional[int] = None,
    ):
        self.fetch = fetch
        self.on_update = on_update
        self.interval_ms = interval_ms
        self.last_snapshot = None
        self._task: Optional[asyncio.Task] = None

    @staticmethod
    def _status_of(snapshot) -> str:
        if isinstance(snapshot, dict):
            return snapshot["status"]
        return snapshot.status

    def delay_for(self, status) -> Optional[float]:
        delay_ms = next_poll_delay(status)
        if delay_ms is None:
            return None
        return (self.interval_ms if self.interval_ms is not None else delay_ms) / 1000

    async def _run(self):
        while True:
            snapshot = await self.fetch()
            self.last_snapshot = snapshot
            await self.on_update(snapshot)

            delay = self.delay_for(self._status_of(snapshot))
            if delay is None:
                logger.debug("Polling stopped at status %s", self._status_of(snapshot))
                return snapshot
            await asyncio.sleep(delay)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.ensure_future(self._run())
        return self._task

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self):
        """Final snapshot, or None if the poller was cancelled"""
        if self._task is None:
            return None
        try:
            return await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
            return None

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.cancel()
        await self.wait()
