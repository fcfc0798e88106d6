"""
InMemoryQueue tests — FIFO, capacity, close semantics, waiter wake-ups.
"""

import asyncio

import pytest

from prefactor_sdk.queue.actions import AgentFinish, AgentStart, SchemaRegister, SpanFinish
from prefactor_sdk.queue.memory import InMemoryQueue, QueueClosedError, QueueFullError


# ══════════════════════════════════════════════
# Actions
# ══════════════════════════════════════════════


class TestActions:

    def test_type_tags(self):
        assert SchemaRegister(schema={}).type == "schema_register"
        assert AgentStart().type == "agent_start"
        assert AgentFinish().type == "agent_finish"
        assert SpanFinish(span_id="s", end_time=1.0).type == "span_finish"

    def test_action_ids_stable_and_unique(self):
        a, b = AgentFinish(), AgentFinish()
        assert a.action_id != b.action_id
        assert a.action_id == a.action_id

    def test_span_finish_to_dict(self):
        d = SpanFinish(span_id="s", end_time=2.5, outputs={"x": 1}).to_dict()
        assert d == {"span_id": "s", "end_time": 2.5, "status": "success", "outputs": {"x": 1}, "error": None}


# ══════════════════════════════════════════════
# Non-blocking operations
# ══════════════════════════════════════════════


class TestNonBlocking:

    def test_fifo_batch(self):
        q = InMemoryQueue()
        for i in range(5):
            q.put_nowait(i)
        assert q.get_batch(3) == [0, 1, 2]
        assert q.size() == 2
        assert q.get_batch(10) == [3, 4]
        assert q.get_batch(10) == []

    def test_full(self):
        q = InMemoryQueue(maxsize=2)
        q.put_nowait(1)
        q.put_nowait(2)
        with pytest.raises(QueueFullError):
            q.put_nowait(3)
        q.get_batch(1)
        q.put_nowait(3)
        assert len(q) == 2

    def test_closed_rejects(self):
        q = InMemoryQueue()
        q.close()
        q.close()
        assert q.closed
        with pytest.raises(QueueClosedError):
            q.put_nowait(1)

    def test_negative_maxsize(self):
        with pytest.raises(ValueError):
            InMemoryQueue(maxsize=-1)


# ══════════════════════════════════════════════
# Async operations
# ══════════════════════════════════════════════


class TestAsync:

    @pytest.mark.asyncio
    async def test_get_waits_for_item(self):
        q = InMemoryQueue()
        getter = asyncio.create_task(q.get())
        await asyncio.sleep(0)
        assert not getter.done()
        q.put_nowait("x")
        result = await asyncio.wait_for(getter, 1)
        assert not result.done
        assert result.item == "x"

    @pytest.mark.asyncio
    async def test_close_wakes_getters_with_done(self):
        q = InMemoryQueue()
        getters = [asyncio.create_task(q.get()) for _ in range(3)]
        await asyncio.sleep(0)
        q.close()
        results = await asyncio.wait_for(asyncio.gather(*getters), 1)
        assert all(r.done for r in results)
        assert (await q.get()).done

    @pytest.mark.asyncio
    async def test_closed_queue_drains_before_done(self):
        q = InMemoryQueue()
        q.put_nowait(1)
        q.close()
        first = await q.get()
        assert not first.done and first.item == 1
        assert (await q.get()).done

    @pytest.mark.asyncio
    async def test_put_waits_while_full(self):
        q = InMemoryQueue(maxsize=1)
        q.put_nowait(1)
        putter = asyncio.create_task(q.put(2))
        await asyncio.sleep(0)
        assert not putter.done()
        assert (await q.get()).item == 1
        await asyncio.wait_for(putter, 1)
        assert q.get_batch(5) == [2]

    @pytest.mark.asyncio
    async def test_put_raises_when_closed_while_waiting(self):
        q = InMemoryQueue(maxsize=1)
        q.put_nowait(1)
        putter = asyncio.create_task(q.put(2))
        await asyncio.sleep(0)
        q.close()
        with pytest.raises(QueueClosedError):
            await asyncio.wait_for(putter, 1)

    @pytest.mark.asyncio
    async def test_cancelled_getter_loses_nothing(self):
        q = InMemoryQueue()
        getter = asyncio.create_task(q.get())
        await asyncio.sleep(0)
        q.put_nowait("keep")
        getter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await getter
        assert q.size() == 1
        assert (await q.get()).item == "keep"

    @pytest.mark.asyncio
    async def test_wait_timeout_and_wakeup(self):
        q = InMemoryQueue()
        assert await q.wait(0.01) is False
        waiter = asyncio.create_task(q.wait(1))
        await asyncio.sleep(0)
        q.put_nowait(1)
        assert await waiter is True

    @pytest.mark.asyncio
    async def test_wait_returns_on_close(self):
        q = InMemoryQueue()
        waiter = asyncio.create_task(q.wait(5))
        await asyncio.sleep(0)
        q.close()
        assert await asyncio.wait_for(waiter, 1) is True
