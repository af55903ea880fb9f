"""Deferred background work that callers may optionally await."""

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class DeferredTaskQueue:
    """Runs best-effort work without blocking the action that triggered it.

    ``submit`` returns the ``asyncio.Task`` so a caller that cares about the
    outcome can await it; a caller that does not can ignore it. Failures are
    logged and stay on the task. ``drain`` waits for everything outstanding,
    so in-flight work finishes even when nobody is watching.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Deferred task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Deferred task {task.get_name()} failed: {error}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all outstanding tasks, including ones submitted meanwhile."""
        while True:
            outstanding = [task for task in self._tasks if not task.done()]
            if not outstanding:
                return
            await asyncio.gather(*outstanding, return_exceptions=True)
