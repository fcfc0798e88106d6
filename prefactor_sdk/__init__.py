"""
Prefactor SDK — client-side tracing for AI agents.

Spans opened by application code (agent runs, model calls, tool calls) are
queued, batched and delivered to the Prefactor collector API, which assigns
its own ids; the SDK reconciles the two.

Quick Start:
    from prefactor_sdk import SDKConfig, SpanType, create_core

    async def main():
        runtime = create_core(SDKConfig.from_env())
        runtime.agent_manager.start_instance()

        with runtime.tracer.span("answer", SpanType.AGENT, inputs={"q": q}) as span:
            span.outputs = {"answer": await agent(q)}

        runtime.agent_manager.finish_instance()
        await runtime.shutdown()
"""

__version__ = "0.1.0"

from prefactor_sdk.core.config import ConfigError, HttpTransportConfig, SDKConfig
from prefactor_sdk.core.runtime import CoreRuntime, create_core
from prefactor_sdk.core.lifecycle import (
    get_active_runtime,
    register_shutdown_handler,
    set_active_runtime,
    shutdown,
)
from prefactor_sdk.agent.instance_manager import AgentInstanceManager, schemas_equal
from prefactor_sdk.queue.actions import (
    AgentFinish,
    AgentStart,
    QueueAction,
    SchemaRegister,
    SpanEnd,
    SpanFinish,
)
from prefactor_sdk.queue.memory import (
    InMemoryQueue,
    QueueClosedError,
    QueueFullError,
    QueueGetResult,
)
from prefactor_sdk.tracing.span import (
    ErrorInfo,
    Span,
    SpanStatus,
    SpanType,
    SpanTypeRegistry,
    TokenUsage,
    ValidationResult,
    build_span_result_payload,
    define_span_type,
    is_agent_span_type,
    register_span_type,
    register_span_type_with_schema,
    span_type_registry,
)
from prefactor_sdk.tracing.context import SpanContext
from prefactor_sdk.tracing.tracer import Tracer
from prefactor_sdk.tracing.active import (
    clear_active_tracer,
    get_active_tracer,
    set_active_tracer,
)
from prefactor_sdk.tracing.with_span import with_span
from prefactor_sdk.transport.base import Transport
from prefactor_sdk.transport.worker import TransportWorker
from prefactor_sdk.transport.stdio import StdioTransport
from prefactor_sdk.transport.http import (
    HttpClient,
    HttpClientError,
    HttpTransport,
    InProcessSender,
    UrllibSender,
)
from prefactor_sdk.utils.logger import configure_logging, setup_logging

__all__ = [
    "__version__",
    # Config / runtime
    "ConfigError",
    "HttpTransportConfig",
    "SDKConfig",
    "CoreRuntime",
    "create_core",
    "get_active_runtime",
    "register_shutdown_handler",
    "set_active_runtime",
    "shutdown",
    # Agent
    "AgentInstanceManager",
    "schemas_equal",
    # Queue
    "AgentFinish",
    "AgentStart",
    "QueueAction",
    "SchemaRegister",
    "SpanEnd",
    "SpanFinish",
    "InMemoryQueue",
    "QueueClosedError",
    "QueueFullError",
    "QueueGetResult",
    # Tracing
    "ErrorInfo",
    "Span",
    "SpanStatus",
    "SpanType",
    "SpanTypeRegistry",
    "TokenUsage",
    "ValidationResult",
    "build_span_result_payload",
    "define_span_type",
    "is_agent_span_type",
    "register_span_type",
    "register_span_type_with_schema",
    "span_type_registry",
    "SpanContext",
    "Tracer",
    "clear_active_tracer",
    "get_active_tracer",
    "set_active_tracer",
    "with_span",
    # Transport
    "Transport",
    "TransportWorker",
    "StdioTransport",
    "HttpClient",
    "HttpClientError",
    "HttpTransport",
    "InProcessSender",
    "UrllibSender",
    # Utils
    "configure_logging",
    "setup_logging",
]
