"""
SpanContext tests — stack operations, restore on error, branch isolation under asyncio.
"""

import asyncio

import pytest

from prefactor_sdk.tracing.context import SpanContext
from prefactor_sdk.tracing.span import Span, SpanType


def make_span(name):
    return Span(span_id=name, trace_id="trace", name=name, span_type=SpanType.CHAIN, start_time=0.0)


@pytest.fixture(autouse=True)
def clean_context():
    SpanContext.clear()
    yield
    SpanContext.clear()


# ══════════════════════════════════════════════
# Stack operations
# ══════════════════════════════════════════════


class TestStack:

    def test_empty(self):
        assert SpanContext.get_current() is None
        assert SpanContext.get_stack() == []

    def test_enter_exit(self):
        a, b = make_span("a"), make_span("b")
        SpanContext.enter(a)
        SpanContext.enter(b)
        assert SpanContext.get_current() is b
        assert SpanContext.span_ids() == ["a", "b"]
        SpanContext.exit()
        assert SpanContext.get_current() is a

    def test_exit_on_empty_is_noop(self):
        SpanContext.exit()
        assert SpanContext.get_stack() == []

    def test_get_stack_is_a_copy(self):
        SpanContext.enter(make_span("a"))
        stack = SpanContext.get_stack()
        stack.append(make_span("intruder"))
        stack.clear()
        assert SpanContext.span_ids() == ["a"]

    def test_clear(self):
        SpanContext.enter(make_span("a"))
        SpanContext.clear()
        assert SpanContext.get_current() is None


# ══════════════════════════════════════════════
# run / run_async
# ══════════════════════════════════════════════


class TestRun:

    def test_run_pushes_and_restores(self):
        root = make_span("root")
        seen = SpanContext.run(root, lambda: SpanContext.span_ids())
        assert seen == ["root"]
        assert SpanContext.get_current() is None

    def test_run_passes_args(self):
        assert SpanContext.run(make_span("a"), lambda x, y=0: x + y, 1, y=2) == 3

    def test_run_restores_on_error(self):
        outer = make_span("outer")
        SpanContext.enter(outer)

        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            SpanContext.run(make_span("inner"), boom)
        assert SpanContext.span_ids() == ["outer"]

    def test_run_restores_even_if_fn_leaves_entries(self):
        def leaky():
            SpanContext.enter(make_span("leak"))

        SpanContext.run(make_span("a"), leaky)
        assert SpanContext.get_stack() == []

    @pytest.mark.asyncio
    async def test_run_async(self):
        root = make_span("root")

        async def body():
            await asyncio.sleep(0)
            return SpanContext.span_ids()

        assert await SpanContext.run_async(root, body) == ["root"]
        assert SpanContext.get_current() is None

    @pytest.mark.asyncio
    async def test_run_async_restores_on_error(self):
        async def boom():
            await asyncio.sleep(0)
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await SpanContext.run_async(make_span("x"), boom)
        assert SpanContext.get_stack() == []


# ══════════════════════════════════════════════
# Concurrent branches
# ══════════════════════════════════════════════


class TestIsolation:

    @pytest.mark.asyncio
    async def test_gather_siblings_isolated(self):
        root = make_span("root")
        seen = {}

        async def branch(name, delay):
            async def work():
                await asyncio.sleep(delay)
                seen[name] = SpanContext.span_ids()
                await asyncio.sleep(delay)
                seen[name + "-after"] = SpanContext.span_ids()

            await SpanContext.run_async(make_span(name), work)

        async def both():
            await asyncio.gather(branch("A", 0.01), branch("B", 0.005))

        await SpanContext.run_async(root, both)

        assert seen["A"] == ["root", "A"]
        assert seen["B"] == ["root", "B"]
        assert seen["A-after"] == ["root", "A"]
        assert seen["B-after"] == ["root", "B"]
        assert SpanContext.get_stack() == []

    @pytest.mark.asyncio
    async def test_create_task_inherits_parent_not_sibling(self):
        root = make_span("root")
        SpanContext.enter(root)

        async def child():
            SpanContext.enter(make_span("child"))
            await asyncio.sleep(0)
            return SpanContext.span_ids()

        task = asyncio.create_task(child())
        SpanContext.enter(make_span("sibling"))
        assert await task == ["root", "child"]
        assert SpanContext.span_ids() == ["root", "sibling"]
