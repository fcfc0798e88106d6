"""Transport interface — where batches of queue actions are delivered."""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from prefactor_sdk.queue.actions import QueueAction


@runtime_checkable
class Transport(Protocol):
    """Batch delivery interface.

    ``process_batch`` raising means the whole batch must be retried; the
    worker re-delivers the same action objects in the same order.
    """

    async def process_batch(self, batch: List[QueueAction]) -> None:
        ...

    async def close(self) -> None:
        ...
