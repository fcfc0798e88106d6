"""
Span context — which span is active in the current logical branch.

The active stack lives in a :class:`contextvars.ContextVar` as an immutable,
parent-linked chain of nodes. Every asyncio task runs in a copy of the
context it was created from, so concurrent siblings started with
``asyncio.gather`` / ``asyncio.create_task`` never observe each other's
spans::

    async def branch(name):
        span = tracer.start_span(name, SpanType.CHAIN)
        return await SpanContext.run_async(span, work)

    await SpanContext.run_async(root, lambda: asyncio.gather(branch("A"), branch("B")))
    # inside A the stack is [root, A]; inside B it is [root, B]
"""

from __future__ import annotations

import contextvars
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from prefactor_sdk.tracing.span import Span

T = TypeVar("T")


class _StackNode:
    __slots__ = ("span", "parent")

    def __init__(self, span: Span, parent: Optional["_StackNode"]) -> None:
        self.span = span
        self.parent = parent


_current: contextvars.ContextVar[Optional[_StackNode]] = contextvars.ContextVar(
    "prefactor_span_stack", default=None
)


class SpanContext:
    """Namespace of operations on the active span stack."""

    @staticmethod
    def get_current() -> Optional[Span]:
        node = _current.get()
        return node.span if node is not None else None

    @staticmethod
    def get_stack() -> List[Span]:
        """Return the active stack, root first. The list is a copy."""
        spans: List[Span] = []
        node = _current.get()
        while node is not None:
            spans.append(node.span)
            node = node.parent
        spans.reverse()
        return spans

    @staticmethod
    def span_ids() -> List[str]:
        return [s.span_id for s in SpanContext.get_stack()]

    @staticmethod
    def enter(span: Span) -> None:
        _current.set(_StackNode(span, _current.get()))

    @staticmethod
    def exit() -> None:
        node = _current.get()
        if node is None:
            return
        _current.set(node.parent)

    @staticmethod
    def clear() -> None:
        _current.set(None)

    @staticmethod
    def activate(span: Span) -> contextvars.Token:
        """Push *span* and return a token for :meth:`restore`."""
        return _current.set(_StackNode(span, _current.get()))

    @staticmethod
    def restore(token: contextvars.Token) -> None:
        _current.reset(token)

    @staticmethod
    def run(span: Span, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``fn`` with *span* pushed; the previous stack is restored after."""
        token = _current.set(_StackNode(span, _current.get()))
        try:
            return fn(*args, **kwargs)
        finally:
            _current.reset(token)

    @staticmethod
    async def run_async(
        span: Span, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Await ``fn(*args, **kwargs)`` with *span* pushed."""
        token = _current.set(_StackNode(span, _current.get()))
        try:
            return await fn(*args, **kwargs)
        finally:
            _current.reset(token)
