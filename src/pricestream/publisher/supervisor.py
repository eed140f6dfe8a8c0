import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class TaskSupervisor:
    """Owns fire-and-forget background tasks so none are lost or leaked.

    Exceptions are logged when a task finishes. `drain` waits for whatever
    is still running, cancelling stragglers after `timeout`.
    """

    def __init__(self) -> None:
        self.tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self.tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if task.cancelled():
            logger.debug("Task %s cancelled", task.get_name())
            return

        if (error := task.exception()) is not None:
            logger.error("Task %s failed: %s", task.get_name(), error, exc_info=error)

    async def drain(self, timeout: Optional[float] = None) -> None:
        if not self.tasks:
            return

        logger.info("Waiting for %d background task(s)", len(self.tasks))
        _, pending = await asyncio.wait(set(self.tasks), timeout=timeout)

        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d background task(s) still running", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
