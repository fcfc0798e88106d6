"""
Span model and span type registry.

Span types are open-ended: the built-ins cover common operations and
applications define their own (``define_span_type("database:query")``).
Registering a type marks it as known and can attach JSON Schemas that are
checked against span inputs (on start) and outputs (on successful end).

Agent-kind types (``agent``, ``agent:*``, ``*:agent``) get special handling in
the tracer: they are emitted as soon as they start and finished separately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Union

import jsonschema

logger = logging.getLogger("prefactor_sdk.tracing")


# ──────────────────────────────────────────────
# Span types
# ──────────────────────────────────────────────


@dataclass(frozen=True)
class SpanType:
    """Opaque wrapper over a span type identifier.

    Two instances with the same ``value`` are equal and hash alike.
    """

    value: str

    AGENT: ClassVar["SpanType"]
    LLM: ClassVar["SpanType"]
    TOOL: ClassVar["SpanType"]
    CHAIN: ClassVar["SpanType"]
    RETRIEVER: ClassVar["SpanType"]

    def __str__(self) -> str:
        return self.value


SpanType.AGENT = SpanType("agent")
SpanType.LLM = SpanType("llm")
SpanType.TOOL = SpanType("tool")
SpanType.CHAIN = SpanType("chain")
SpanType.RETRIEVER = SpanType("retriever")

BUILTIN_SPAN_TYPES = (
    SpanType.AGENT,
    SpanType.LLM,
    SpanType.TOOL,
    SpanType.CHAIN,
    SpanType.RETRIEVER,
)

SpanTypeLike = Union[SpanType, str]


def as_span_type(span_type: SpanTypeLike) -> SpanType:
    if isinstance(span_type, SpanType):
        return span_type
    if isinstance(span_type, str):
        return SpanType(span_type)
    raise TypeError(f"span type must be SpanType or str, got {type(span_type).__name__}")


# ──────────────────────────────────────────────
# Span
# ──────────────────────────────────────────────


class SpanStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ErrorInfo:
    error_type: str
    message: str
    stacktrace: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "error_type": self.error_type,
            "message": self.message,
            "stacktrace": self.stacktrace,
        }


@dataclass
class Span:
    """A single unit of work in a trace.

    Attributes:
        span_id: Client-side PFID of this span.
        trace_id: Shared across all spans in one trace.
        parent_span_id: Parent span ID (``None`` for a root).
        name: Human-readable name.
        span_type: What kind of operation this is.
        start_time: Unix timestamp (seconds).
        end_time: Unix timestamp (seconds), ``None`` until ended.
        status: running / success / error.
        inputs: Captured inputs.
        outputs: Captured outputs, ``None`` until ended.
        token_usage: Token counts for model calls.
        error: Error details when the span failed.
        metadata: Free-form key-value metadata.
        tags: Labels for filtering.
    """

    span_id: str
    trace_id: str
    name: str
    span_type: SpanType
    start_time: float
    parent_span_id: Optional[str] = None
    end_time: Optional[float] = None
    status: SpanStatus = SpanStatus.RUNNING
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Optional[Dict[str, Any]] = None
    token_usage: Optional[TokenUsage] = None
    error: Optional[ErrorInfo] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Export as a serializable dict."""
        return {
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "trace_id": self.trace_id,
            "name": self.name,
            "span_type": self.span_type.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status.value,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
            "error": self.error.to_dict() if self.error else None,
            "metadata": self.metadata,
            "tags": list(self.tags),
        }


def build_span_result_payload(span: Span) -> Dict[str, Any]:
    """Result record for a finished span: the error when it failed, else outputs."""
    if span.error is not None:
        return span.error.to_dict()
    return dict(span.outputs) if span.outputs else {}


# ──────────────────────────────────────────────
# Registry
# ──────────────────────────────────────────────


@dataclass
class SpanTypeSchema:
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None


@dataclass
class ValidationResult:
    success: bool
    error: Optional[str] = None


def is_agent_span_type(span_type: SpanTypeLike) -> bool:
    value = as_span_type(span_type).value
    return value == "agent" or value.startswith("agent:") or value.endswith(":agent")


class SpanTypeRegistry:
    """Known span types plus their optional input/output JSON Schemas."""

    def __init__(self, builtins: bool = True) -> None:
        self._known: Dict[SpanType, None] = {}
        self._schemas: Dict[SpanType, SpanTypeSchema] = {}
        if builtins:
            self.register_batch(BUILTIN_SPAN_TYPES)

    def register(
        self,
        span_type: SpanTypeLike,
        input_schema: Optional[Dict[str, Any]] = None,
        output_schema: Optional[Dict[str, Any]] = None,
    ) -> SpanType:
        """Mark *span_type* as known, optionally attaching schemas."""
        st = as_span_type(span_type)
        self._known[st] = None
        if input_schema is not None or output_schema is not None:
            self._schemas[st] = SpanTypeSchema(input=input_schema, output=output_schema)
        logger.debug("Span type registered: %s", st.value)
        return st

    def register_batch(self, span_types: Iterable[SpanTypeLike]) -> None:
        for st in span_types:
            self.register(st)

    def is_known(self, span_type: SpanTypeLike) -> bool:
        return as_span_type(span_type) in self._known

    def __contains__(self, span_type: SpanTypeLike) -> bool:
        return self.is_known(span_type)

    def get_all(self) -> List[SpanType]:
        return list(self._known)

    def get_schema(self, span_type: SpanTypeLike) -> Optional[SpanTypeSchema]:
        return self._schemas.get(as_span_type(span_type))

    def is_agent_span_type(self, span_type: SpanTypeLike) -> bool:
        return is_agent_span_type(span_type)

    def validate(self, span_type: SpanTypeLike, data: Any, phase: str) -> ValidationResult:
        """Check *data* against the ``"input"`` or ``"output"`` schema.

        Types without a schema for *phase* always validate. A malformed
        schema is reported as a failed result.
        """
        if phase not in ("input", "output"):
            raise ValueError(f"phase must be 'input' or 'output', got {phase!r}")
        schema = self._schemas.get(as_span_type(span_type))
        if schema is None:
            return ValidationResult(success=True)
        target = schema.input if phase == "input" else schema.output
        if target is None:
            return ValidationResult(success=True)
        try:
            jsonschema.validate(instance=data, schema=target)
        except jsonschema.ValidationError as e:
            return ValidationResult(success=False, error=e.message)
        except jsonschema.SchemaError as e:
            return ValidationResult(success=False, error=f"invalid schema: {e.message}")
        return ValidationResult(success=True)


span_type_registry = SpanTypeRegistry()


def define_span_type(value: str) -> SpanType:
    """Create a span type without registering it."""
    return SpanType(value)


def register_span_type(value: str) -> SpanType:
    """Create a span type and mark it known in the global registry."""
    return span_type_registry.register(value)


def register_span_type_with_schema(
    value: str,
    input: Optional[Dict[str, Any]] = None,
    output: Optional[Dict[str, Any]] = None,
) -> SpanType:
    """Register a span type whose inputs/outputs are checked by JSON Schema.

    Usage::

        API_FETCH = register_span_type_with_schema(
            "api:fetch",
            input={"type": "object", "required": ["url"]},
            output={"type": "object", "properties": {"status": {"type": "integer"}}},
        )
    """
    return span_type_registry.register(value, input_schema=input, output_schema=output)
