"""Write serializer for the single ledger writer identity.

Every write from this process goes through one FIFO queue so that only one
transaction is in flight at a time. A job that returns a transaction hash is
confirmed before the next job starts. The ordering guarantee is in-process
only; running two publishers with the same writer key is unsupported.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple, Optional

from pricestream.common.exceptions import LedgerWriteError
from pricestream.ledger.client import DataStream, EventStream, LedgerClient

logger = logging.getLogger(__name__)

DEFAULT_WRITE_DELAY = 0.05

WriteHandle = Optional[str]
ExecuteFn = Callable[[], Awaitable[WriteHandle]]


@dataclass
class QueuedWrite:
    id: str
    name: str
    execute: ExecuteFn
    future: "asyncio.Future[WriteHandle]"


class QueueStatus(NamedTuple):
    pending: int
    processing: bool


class WriteSerializer:
    """Executes queued ledger writes one at a time, in submission order."""

    def __init__(self, ledger: LedgerClient, delay: float = DEFAULT_WRITE_DELAY) -> None:
        self.ledger = ledger
        self.delay = delay
        self.queue: deque[QueuedWrite] = deque()
        self.processing = False
        self.active: Optional[QueuedWrite] = None
        self.counter = 0
        self.worker: Optional[asyncio.Task] = None

    async def submit(self, name: str, execute: ExecuteFn) -> WriteHandle:
        """Queue a write and wait until it is confirmed.

        Returns the transaction hash (or None when the job had nothing to
        send). Raises whatever the job or its confirmation raised.
        """
        self.counter += 1
        job = QueuedWrite(
            id=f"{name}-{self.counter}",
            name=name,
            execute=execute,
            future=asyncio.get_running_loop().create_future(),
        )
        self.queue.append(job)
        logger.debug("Queued write %s (%d pending)", job.id, len(self.queue))

        self.ensure_worker()
        return await job.future

    def ensure_worker(self) -> None:
        if self.worker is None or self.worker.done():
            self.worker = asyncio.create_task(self.process_queue(), name="write-serializer")

    async def process_queue(self) -> None:
        self.processing = True
        try:
            while self.queue:
                job = self.queue.popleft()

                if job.future.cancelled():
                    logger.info("Skipping cancelled write %s", job.id)
                    continue

                self.active = job
                try:
                    handle = await job.execute()
                    if handle:
                        await self.ledger.wait_for_confirmation(handle)
                except asyncio.CancelledError:
                    job.future.cancel()
                    raise
                except Exception as e:
                    logger.error("Write %s failed: %s", job.id, e)
                    if not job.future.done():
                        job.future.set_exception(e)
                else:
                    logger.debug("Write %s confirmed: %s", job.id, handle)
                    if not job.future.done():
                        job.future.set_result(handle)
                finally:
                    self.active = None

                await asyncio.sleep(self.delay)
        finally:
            self.processing = False

    async def set_and_emit_events(
        self, name: str, data_streams: list[DataStream], event_streams: list[EventStream]
    ) -> WriteHandle:
        """Store stream data and emit events (queued)."""

        async def execute() -> WriteHandle:
            result = await self.ledger.set_and_emit_events(data_streams, event_streams)
            return result.unwrap()

        return await self.submit(name, execute)

    async def emit_events(self, name: str, event_streams: list[EventStream]) -> WriteHandle:
        """Emit events only (queued)."""

        async def execute() -> WriteHandle:
            result = await self.ledger.emit_events(event_streams)
            return result.unwrap()

        return await self.submit(name, execute)

    def status(self) -> QueueStatus:
        return QueueStatus(pending=len(self.queue), processing=self.processing)

    async def drain(self) -> None:
        """Wait until every queued write has settled."""
        while self.worker is not None and not self.worker.done():
            await asyncio.shield(self.worker)

    async def close(self) -> None:
        """Reject writes that have not started and stop the worker."""
        while self.queue:
            job = self.queue.popleft()
            if not job.future.done():
                job.future.set_exception(LedgerWriteError(f"{job.id}: serializer closed"))

        if self.worker is not None and not self.worker.done():
            self.worker.cancel()
            try:
                await self.worker
            except asyncio.CancelledError:
                pass
