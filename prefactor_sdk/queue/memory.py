"""
InMemoryQueue — asyncio FIFO with close semantics.

Unlike :class:`asyncio.Queue` it can be closed: once closed, producers are
rejected and consumers drain what is left and then receive a ``done``
result. Waiters are only ever *signalled*; items stay in the buffer until a
consumer actually takes them, so a cancelled consumer never loses an item.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Generic, List, Optional, TypeVar

logger = logging.getLogger("prefactor_sdk.queue")

T = TypeVar("T")


# ──────────────────────────────────────────────
# Errors / results
# ──────────────────────────────────────────────


class QueueError(Exception):
    """Base class for queue errors."""


class QueueClosedError(QueueError):
    def __init__(self) -> None:
        super().__init__("queue is closed")


class QueueFullError(QueueError):
    def __init__(self, maxsize: int) -> None:
        self.maxsize = maxsize
        super().__init__(f"queue is full (maxsize={maxsize})")


@dataclass
class QueueGetResult(Generic[T]):
    done: bool
    item: Optional[T] = None


# ──────────────────────────────────────────────
# InMemoryQueue
# ──────────────────────────────────────────────


class InMemoryQueue(Generic[T]):
    """Bounded (or unbounded, ``maxsize=0``) closable queue.

    Usage::

        queue = InMemoryQueue()
        queue.put_nowait(action)

        while True:
            result = await queue.get()
            if result.done:
                break
            handle(result.item)
    """

    def __init__(self, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError("maxsize must be >= 0")
        self.maxsize = maxsize
        self._items: Deque[T] = deque()
        self._getters: Deque[asyncio.Future] = deque()
        self._putters: Deque[asyncio.Future] = deque()
        self._waiters: List[asyncio.Future] = []
        self._closed = False

    # ─── state ───

    @property
    def closed(self) -> bool:
        return self._closed

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return self.maxsize > 0 and len(self._items) >= self.maxsize

    # ─── producers ───

    def put_nowait(self, item: T) -> None:
        if self._closed:
            raise QueueClosedError()
        if self.full():
            raise QueueFullError(self.maxsize)
        self._items.append(item)
        self._wake_one(self._getters)
        self._wake_waiters()

    async def put(self, item: T) -> None:
        """Enqueue *item*, suspending while the queue is full."""
        while self.full() and not self._closed:
            fut = asyncio.get_running_loop().create_future()
            self._putters.append(fut)
            try:
                await fut
            except asyncio.CancelledError:
                self._discard(self._putters, fut)
                if fut.done() and not fut.cancelled() and not self.full():
                    self._wake_one(self._putters)
                raise
        self.put_nowait(item)

    # ─── consumers ───

    async def get(self) -> QueueGetResult[T]:
        """Take the next item; ``done`` once the queue is closed and drained."""
        while not self._items:
            if self._closed:
                return QueueGetResult(done=True)
            fut = asyncio.get_running_loop().create_future()
            self._getters.append(fut)
            try:
                await fut
            except asyncio.CancelledError:
                self._discard(self._getters, fut)
                if fut.done() and not fut.cancelled() and self._items:
                    self._wake_one(self._getters)
                raise
        item = self._items.popleft()
        self._wake_one(self._putters)
        return QueueGetResult(done=False, item=item)

    def get_batch(self, max_items: int) -> List[T]:
        """Non-blocking: remove and return up to *max_items* items."""
        batch: List[T] = []
        while self._items and len(batch) < max_items:
            batch.append(self._items.popleft())
            self._wake_one(self._putters)
        return batch

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until an item is available or the queue is closed.

        Returns True if there is something to act on, False on timeout.
        """
        if self._items or self._closed:
            return True
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)
        return bool(self._items) or self._closed

    # ─── lifecycle ───

    def close(self) -> None:
        """Reject further puts and wake every waiter. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for waiters in (self._getters, self._putters):
            while waiters:
                self._wake_one(waiters)
        self._wake_waiters()
        logger.debug("Queue closed with %d item(s) remaining", len(self._items))

    # ─── internals ───

    @staticmethod
    def _wake_one(waiters: Deque[asyncio.Future]) -> None:
        while waiters:
            fut = waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return

    def _wake_waiters(self) -> None:
        for fut in self._waiters:
            if not fut.done():
                fut.set_result(None)
        self._waiters.clear()

    @staticmethod
    def _discard(waiters: Deque[Any], fut: asyncio.Future) -> None:
        try:
            waiters.remove(fut)
        except ValueError:
            pass
