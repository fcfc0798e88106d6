"""
Tracer — creates spans and turns their lifecycle into queue actions.

Agent-kind spans are emitted as soon as they start (so long-running agents
show up immediately) and finished later with a separate action; every other
span is emitted once, when it ends.
"""

from __future__ import annotations

import dataclasses
import logging
import time
import traceback
import zlib
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from prefactor_sdk.queue.actions import QueueAction, SpanEnd, SpanFinish
from prefactor_sdk.tracing.context import SpanContext
from prefactor_sdk.tracing.span import (
    ErrorInfo,
    Span,
    SpanStatus,
    SpanType,
    SpanTypeLike,
    SpanTypeRegistry,
    TokenUsage,
    as_span_type,
    span_type_registry,
)
from prefactor_sdk.utils import ids
from prefactor_sdk.utils.serialization import serialize_value

logger = logging.getLogger("prefactor_sdk.tracing.tracer")


class Tracer:
    """Creates spans and enqueues their records.

    Parameters:
        queue: Anything with ``put_nowait(action)`` (normally an InMemoryQueue).
        partition: PFID partition for every id this tracer mints.
        registry: Span type registry used for schema validation.
        worker: Optional TransportWorker closed by :meth:`close`.
        sample_rate: Fraction of traces to record (0.0 - 1.0), decided per trace.
        capture_inputs / capture_outputs: Record payloads, or ``{}`` when off.
        max_input_length / max_output_length: String truncation limits.

    Usage::

        tracer = Tracer(queue)

        with tracer.span("plan", SpanType.CHAIN, inputs={"goal": goal}) as span:
            span.outputs = {"steps": steps}

        llm = tracer.start_span("chat", SpanType.LLM, inputs={"prompt": prompt})
        tracer.end_span(llm, outputs={"text": text}, token_usage=usage)
    """

    def __init__(
        self,
        queue: Any,
        partition: Optional[str] = None,
        *,
        registry: Optional[SpanTypeRegistry] = None,
        worker: Any = None,
        sample_rate: float = 1.0,
        capture_inputs: bool = True,
        capture_outputs: bool = True,
        max_input_length: int = 10000,
        max_output_length: int = 10000,
    ) -> None:
        if not 0.0 <= sample_rate <= 1.0:
            raise ValueError("sample_rate must be between 0.0 and 1.0")
        self.queue = queue
        self.partition = partition or ids.generate_partition()
        self.registry = registry or span_type_registry
        self.worker = worker
        self.sample_rate = sample_rate
        self.capture_inputs = capture_inputs
        self.capture_outputs = capture_outputs
        self.max_input_length = max_input_length
        self.max_output_length = max_output_length

    # ─── spans ───

    def start_span(
        self,
        name: str,
        span_type: SpanTypeLike = SpanType.CHAIN,
        inputs: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
        parent_span_id: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> Span:
        """Create a running span.

        The parent is *parent_span_id* when given, otherwise the active span
        of the current context, otherwise the span starts a new trace.
        """
        st = as_span_type(span_type)
        parent = SpanContext.get_current()
        if parent is not None and parent_span_id in (None, parent.span_id):
            parent_span_id = parent.span_id
            trace_id = trace_id or parent.trace_id
        elif parent_span_id is not None and trace_id is None:
            # an explicit ancestor further up the active stack keeps its trace
            for ancestor in SpanContext.get_stack():
                if ancestor.span_id == parent_span_id:
                    trace_id = ancestor.trace_id
                    break

        raw_inputs = _to_mapping(inputs, name, "inputs")
        check = self.registry.validate(st, raw_inputs, "input")
        if not check.success:
            logger.warning("Input validation failed for span %r (%s): %s", name, st, check.error)

        span = Span(
            span_id=ids.generate(self.partition),
            trace_id=trace_id or ids.generate(self.partition),
            parent_span_id=parent_span_id,
            name=name,
            span_type=st,
            start_time=time.time(),
            inputs=self._capture(raw_inputs, self.capture_inputs, self.max_input_length),
            metadata=dict(metadata) if metadata else {},
            tags=list(tags) if tags else [],
        )

        if self.registry.is_agent_span_type(st) and self._sampled(span.trace_id):
            # snapshot: later mutation by end_span must not leak into the start record
            self._enqueue(SpanEnd(dataclasses.replace(span)))
        return span

    def end_span(
        self,
        span: Optional[Span],
        outputs: Optional[Mapping[str, Any]] = None,
        error: Optional[BaseException] = None,
        token_usage: Optional[Union[TokenUsage, Mapping[str, int]]] = None,
    ) -> None:
        """Finish *span* and enqueue its record.

        Ending ``None`` or an already-ended span only logs a warning.
        """
        if span is None:
            logger.warning("end_span called without a span")
            return
        if span.end_time is not None:
            logger.warning("Span %s (%s) already ended; ignoring", span.span_id, span.name)
            return

        # normalise before mutating the span
        usage = _to_token_usage(token_usage, span)
        raw_outputs = _to_mapping(outputs, span.name, "outputs")

        span.end_time = max(time.time(), span.start_time)
        span.token_usage = usage
        if error is not None:
            span.status = SpanStatus.ERROR
            span.error = _error_info(error)
        else:
            span.status = SpanStatus.SUCCESS
            check = self.registry.validate(span.span_type, raw_outputs, "output")
            if not check.success:
                logger.warning(
                    "Output validation failed for span %r (%s): %s",
                    span.name,
                    span.span_type,
                    check.error,
                )
        span.outputs = self._capture(raw_outputs, self.capture_outputs, self.max_output_length)

        if not self._sampled(span.trace_id):
            return

        action: QueueAction
        if self.registry.is_agent_span_type(span.span_type):
            action = SpanFinish(
                span_id=span.span_id,
                end_time=span.end_time,
                status=span.status,
                outputs=span.outputs,
                error=span.error,
            )
        else:
            action = SpanEnd(span)
        self._enqueue(action)

    @contextmanager
    def span(
        self,
        name: str,
        span_type: SpanTypeLike = SpanType.CHAIN,
        inputs: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> Iterator[Span]:
        """Start a span, make it current for the block, end it on exit.

        Assign ``span.outputs`` inside the block to record outputs. An
        exception (cancellation included) ends the span with an error and is
        re-raised.
        """
        s = self.start_span(name, span_type, inputs=inputs, metadata=metadata, tags=tags)
        token = SpanContext.activate(s)
        try:
            yield s
        except BaseException as e:
            if not s.ended:
                self.end_span(s, error=e)
            raise
        else:
            if not s.ended:
                self.end_span(s, outputs=s.outputs)
        finally:
            SpanContext.restore(token)

    async def close(self) -> None:
        """Close the delivery path (worker if attached, else the queue)."""
        try:
            if self.worker is not None:
                await self.worker.close()
            elif hasattr(self.queue, "close"):
                self.queue.close()
        except Exception as e:
            logger.error("Tracer close failed: %s", e, exc_info=True)

    # ─── internals ───

    def _enqueue(self, action: QueueAction) -> None:
        try:
            self.queue.put_nowait(action)
        except Exception as e:
            logger.error("Failed to enqueue %s action: %s", action.type, e)

    def _sampled(self, trace_id: str) -> bool:
        if self.sample_rate >= 1.0:
            return True
        if self.sample_rate <= 0.0:
            return False
        # keyed on trace id so every span of a trace agrees
        return zlib.crc32(trace_id.encode("utf-8")) / 0x100000000 < self.sample_rate

    @staticmethod
    def _capture(values: Dict[str, Any], enabled: bool, max_length: int) -> Dict[str, Any]:
        if not enabled:
            return {}
        try:
            return serialize_value(values, max_length)
        except Exception as e:
            logger.warning("Could not capture span payload; recording {}: %s", e)
            return {}


# ─── argument normalisation ───

_TOKEN_USAGE_KEYS = {
    "prompt_tokens": "prompt_tokens",
    "promptTokens": "prompt_tokens",
    "completion_tokens": "completion_tokens",
    "completionTokens": "completion_tokens",
    "total_tokens": "total_tokens",
    "totalTokens": "total_tokens",
}


def _to_token_usage(value: Any, span: Span) -> Optional[TokenUsage]:
    """Accept a TokenUsage or a mapping with snake_case or camelCase keys.

    Unknown keys are skipped; an unusable value is logged and dropped.
    """
    if value is None or isinstance(value, TokenUsage):
        return value
    if not isinstance(value, Mapping):
        logger.warning(
            "Ignoring token_usage of type %s for span %r", type(value).__name__, span.name
        )
        return None
    counts: Dict[str, int] = {}
    for key, raw in value.items():
        field_name = _TOKEN_USAGE_KEYS.get(key)
        if field_name is None:
            logger.debug("Skipping unknown token_usage key %r", key)
            continue
        try:
            counts[field_name] = int(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring token_usage %s=%r for span %r", key, raw, span.name)
    return TokenUsage(**counts)


def _to_mapping(value: Any, span_name: str, label: str) -> Dict[str, Any]:
    if not value:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    logger.warning(
        "Span %r %s must be a mapping, got %s; recording it under 'value'",
        span_name,
        label,
        type(value).__name__,
    )
    return {"value": value}


def _error_info(error: BaseException) -> ErrorInfo:
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return ErrorInfo(error_type=type(error).__name__, message=str(error), stacktrace=stack)
