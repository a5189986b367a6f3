"""
Debounced writes for free-text fields (stage comments, week tag).

One cancellable delayed task per (requisition_id, field). A new edit for the
same key cancels the pending task and restarts the quiet period, so only the
last value is written. Cancelling or closing drops pending writes.
"""

import asyncio
from typing import Awaitable, Callable, Hashable, Optional

import structlog

from reqflow.config import settings

logger = structlog.get_logger()

Write = Callable[[], Awaitable[object]]


class AutosaveScheduler:
    def __init__(self, delay: Optional[float] = None):
        self.delay = settings.AUTOSAVE_DELAY_SECONDS if delay is None else delay
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def schedule(self, key: Hashable, write: Write) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.create_task(self._run(key, write))
        self._tasks[key] = task
        return task

    async def _run(self, key: Hashable, write: Write) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            logger.debug("autosave_superseded", key=str(key))
            raise
        # past the quiet period the write is no longer cancellable
        self._tasks.pop(key, None)
        try:
            await write()
            logger.info("autosave_fired", key=str(key))
        except Exception as e:
            logger.error("autosave_failed", key=str(key), error=str(e))

    def cancel(self, key: Hashable) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending(self, key: Optional[Hashable] = None) -> int:
        if key is not None:
            task = self._tasks.get(key)
            return int(task is not None and not task.done())
        return sum(1 for t in self._tasks.values() if not t.done())

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("autosave_dropped", count=len(tasks))


autosave = AutosaveScheduler()
