"""Run a callable inside a span."""

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional

from prefactor_sdk.tracing.active import get_active_tracer
from prefactor_sdk.tracing.context import SpanContext
from prefactor_sdk.tracing.span import SpanType, SpanTypeLike
from prefactor_sdk.tracing.tracer import Tracer


async def with_span(
    name: str,
    span_type: SpanTypeLike,
    fn: Callable[[], Any],
    *,
    inputs: Optional[Mapping[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    tags: Optional[List[str]] = None,
    tracer: Optional[Tracer] = None,
) -> Any:
    """Start a span, run ``fn`` with it current, end it with the result.

    ``fn`` may be sync or async. A mapping result is recorded as the span
    outputs, ``None`` as ``{}``, anything else as ``{"result": value}``.
    Exceptions, cancellation included, end the span with an error and
    propagate.

    Usage::

        answer = await with_span("lookup", SpanType.TOOL, lambda: search(query))
    """
    if tracer is None:
        tracer = get_active_tracer()
        if tracer is None:
            raise RuntimeError(
                "No active tracer found. Initialize the SDK first or pass a tracer explicitly."
            )

    span = tracer.start_span(
        name,
        span_type or SpanType.CHAIN,
        inputs=inputs,
        metadata=metadata,
        tags=tags,
    )

    async def _call() -> Any:
        result = fn()
        if inspect.isawaitable(result):
            result = await result
        return result

    try:
        result = await SpanContext.run_async(span, _call)
    except BaseException as e:
        tracer.end_span(span, error=e)
        raise
    tracer.end_span(span, outputs=_to_outputs(result))
    return result


def _to_outputs(result: Any) -> Dict[str, Any]:
    if result is None:
        return {}
    if isinstance(result, Mapping):
        return dict(result)
    return {"result": result}
