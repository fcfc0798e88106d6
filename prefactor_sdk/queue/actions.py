"""Queue actions — the messages the tracer and agent manager hand to a transport."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Union

from prefactor_sdk.tracing.span import ErrorInfo, Span, SpanStatus


def _action_id() -> str:
    return uuid.uuid4().hex


@dataclass
class SchemaRegister:
    schema: Dict[str, Any]
    action_id: str = field(default_factory=_action_id)

    type: ClassVar[str] = "schema_register"

    def to_dict(self) -> Dict[str, Any]:
        return {"schema": self.schema}


@dataclass
class AgentStart:
    agent_id: Optional[str] = None
    agent_identifier: Optional[str] = None
    agent_name: Optional[str] = None
    agent_description: Optional[str] = None
    action_id: str = field(default_factory=_action_id)

    type: ClassVar[str] = "agent_start"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_identifier": self.agent_identifier,
            "agent_name": self.agent_name,
            "agent_description": self.agent_description,
        }


@dataclass
class AgentFinish:
    action_id: str = field(default_factory=_action_id)

    type: ClassVar[str] = "agent_finish"

    def to_dict(self) -> Dict[str, Any]:
        return {}


@dataclass
class SpanEnd:
    """Emit a span record (a finished span, or an agent span at start)."""

    span: Span
    action_id: str = field(default_factory=_action_id)

    type: ClassVar[str] = "span_end"

    def to_dict(self) -> Dict[str, Any]:
        return self.span.to_dict()


@dataclass
class SpanFinish:
    """Mark a previously emitted (agent) span as finished."""

    span_id: str
    end_time: float
    status: SpanStatus = SpanStatus.SUCCESS
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[ErrorInfo] = None
    action_id: str = field(default_factory=_action_id)

    type: ClassVar[str] = "span_finish"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "span_id": self.span_id,
            "end_time": self.end_time,
            "status": self.status.value,
            "outputs": self.outputs,
            "error": self.error.to_dict() if self.error else None,
        }


QueueAction = Union[SchemaRegister, AgentStart, AgentFinish, SpanEnd, SpanFinish]
