"""
TransportWorker — drains the action queue into a transport in batches.

A batch that fails is kept and re-delivered verbatim (same objects, same
order) after ``interval`` until it succeeds; nothing new is dequeued while a
batch is pending, so delivery order always matches enqueue order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from prefactor_sdk.queue.actions import QueueAction
from prefactor_sdk.queue.memory import InMemoryQueue
from prefactor_sdk.transport.base import Transport

logger = logging.getLogger("prefactor_sdk.transport.worker")


class TransportWorker:
    """Background delivery loop.

    Parameters:
        queue: Source of actions.
        transport: Destination for batches.
        batch_size: Max actions per ``process_batch`` call.
        interval: Seconds to idle when the queue is empty, and to back off
            after a failed batch.

    Usage::

        worker = TransportWorker(queue, transport, batch_size=50, interval=1.0)
        worker.start()
        ...
        await worker.flush(5.0)
        await worker.close()
    """

    def __init__(
        self,
        queue: InMemoryQueue,
        transport: Transport,
        batch_size: int = 50,
        interval: float = 1.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.queue = queue
        self.transport = transport
        self.batch_size = batch_size
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._pending_batch: Optional[List[QueueAction]] = None
        self._in_flight = False
        self._closed = False

    # ─── lifecycle ───

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def idle(self) -> bool:
        return self.queue.size() == 0 and self._pending_batch is None and not self._in_flight

    def start(self) -> None:
        """Start the delivery loop. Must be called with a running event loop."""
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        logger.debug(
            "TransportWorker started (batch_size=%d, interval=%.3fs)",
            self.batch_size,
            self.interval,
        )

    async def flush(self, timeout: float) -> bool:
        """Wait until everything enqueued so far has been delivered.

        Returns True when idle, False if *timeout* elapsed first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self.idle:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.interval, remaining))
        return True

    async def close(self, timeout: Optional[float] = None) -> None:
        """Close the queue, drain it until *timeout*, then close the transport."""
        if self._closed:
            return
        self._closed = True
        if timeout is None:
            timeout = self.interval * 50

        self.queue.close()

        if self._task is not None:
            done, _ = await asyncio.wait({self._task}, timeout=timeout)
            if not done:
                logger.warning(
                    "TransportWorker.close timed out waiting for loop to finish; "
                    "closing transport now may cause potential data loss"
                )
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
        elif self.queue.size() > 0:
            logger.warning(
                "TransportWorker closed before start; %d action(s) not delivered",
                self.queue.size(),
            )

        try:
            await self.transport.close()
        except Exception as e:
            logger.error("TransportWorker transport close failed: %s", e, exc_info=True)

    # ─── loop ───

    async def _run(self) -> None:
        while True:
            batch = self._pending_batch or self.queue.get_batch(self.batch_size)
            if not batch:
                if self.queue.closed:
                    break
                await self.queue.wait(self.interval)
                continue

            self._in_flight = True
            try:
                await self.transport.process_batch(batch)
                self._pending_batch = None
            except Exception as e:
                self._pending_batch = batch
                logger.error(
                    "TransportWorker process_batch failed (%d action(s), will retry): %s",
                    len(batch),
                    e,
                    exc_info=True,
                )
                await asyncio.sleep(self.interval)
            finally:
                self._in_flight = False
        logger.debug("TransportWorker loop finished")
