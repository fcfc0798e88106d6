"""
HttpTransport — delivers queue actions to the collector API.

The collector assigns its own span ids, so the transport keeps a map from
client span ids to server ids. A span's finish can arrive before the span
itself has been created on the server (different batches, failed create);
such finishes are parked in ``pending_finishes`` and sent as soon as the
server id is known. Per client span::

    unseen -> server id known -> finished
    unseen -> pending finish  -> server id known -> finished

Delivery is at-least-once: when a request fails with a transient error the
exception propagates and the worker re-delivers the whole batch. Actions of
that batch that already completed are skipped on the retry, and every
request carries an idempotency key derived from the logical operation.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from prefactor_sdk.agent.instance_manager import schemas_equal
from prefactor_sdk.core.config import HttpTransportConfig
from prefactor_sdk.queue.actions import (
    AgentFinish,
    AgentStart,
    QueueAction,
    SchemaRegister,
    SpanEnd,
    SpanFinish,
)
from prefactor_sdk.tracing.span import Span, SpanStatus, build_span_result_payload
from prefactor_sdk.transport.http.client import HttpClient, HttpClientError
from prefactor_sdk.transport.http.endpoints import (
    AgentInstanceClient,
    AgentSpanClient,
    response_id,
)

logger = logging.getLogger("prefactor_sdk.transport.http")

STATUS_MAP = {
    SpanStatus.RUNNING: "active",
    SpanStatus.SUCCESS: "complete",
    SpanStatus.ERROR: "failed",
}


def to_iso(timestamp: float) -> str:
    """Unix seconds -> ISO-8601 UTC with millisecond precision."""
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HttpTransport:
    """Transport that reconciles client span ids with server ids.

    Parameters:
        config: Collector endpoint, credentials and agent identity.
        client: Pre-built HttpClient (default: one built from *config*).

    Usage::

        transport = HttpTransport(config)
        worker = TransportWorker(queue, transport)
        worker.start()
    """

    def __init__(self, config: HttpTransportConfig, client: Optional[HttpClient] = None) -> None:
        self.config = config
        self.http = client or HttpClient(config)
        self.instances = AgentInstanceClient(self.http)
        self.spans = AgentSpanClient(self.http)

        self.agent_id = config.agent_id
        self.agent_identifier = config.agent_identifier
        self.agent_name = config.agent_name
        self.agent_description = config.agent_description

        self.instance_id: Optional[str] = None
        self.span_id_map: Dict[str, str] = {}
        self.pending_finishes: Dict[str, SpanFinish] = {}

        self._schema: Optional[Dict[str, Any]] = config.agent_schema
        self._requires_new_identifier = False
        self._previous_identifier: Optional[str] = None
        self._register_key: Optional[str] = None
        self._finished: Set[str] = set()
        self._done_actions: Set[str] = set()
        self._closed = False

    # ─── Transport interface ───

    async def process_batch(self, batch: List[QueueAction]) -> None:
        if self._closed:
            logger.warning("HttpTransport closed; dropping batch of %d action(s)", len(batch))
            return

        # schema registration must be applied before anything that registers
        ordered = [a for a in batch if isinstance(a, SchemaRegister)]
        ordered += [a for a in batch if not isinstance(a, SchemaRegister)]

        for action in ordered:
            if action.action_id in self._done_actions:
                continue
            try:
                await self._process(action)
            except HttpClientError as e:
                if e.retryable:
                    raise
                logger.error(
                    "Dropping %s action: HTTP %s %s: %r",
                    action.type,
                    e.status,
                    e.status_text,
                    e.response_body,
                )
            except Exception as e:
                logger.error("Error processing %s action: %s", action.type, e, exc_info=True)
            self._done_actions.add(action.action_id)

        self._done_actions.clear()

    async def close(self) -> None:
        self._closed = True
        if self.pending_finishes:
            logger.warning(
                "Transport closed with %d pending span finish(es) that could not be processed: %s",
                len(self.pending_finishes),
                ", ".join(self.pending_finishes),
            )
            self.pending_finishes.clear()

    # ─── dispatch ───

    async def _process(self, action: QueueAction) -> None:
        if isinstance(action, SchemaRegister):
            self._apply_schema(action)
        elif isinstance(action, AgentStart):
            await self._start_instance(action)
        elif isinstance(action, AgentFinish):
            await self._finish_instance()
        elif isinstance(action, SpanEnd):
            await self._send_span(action.span)
        elif isinstance(action, SpanFinish):
            await self._handle_finish(action)
        else:
            logger.warning("Unknown action type: %r", getattr(action, "type", action))

    # ─── agent instance ───

    def _apply_schema(self, action: SchemaRegister) -> None:
        if self._schema is not None and not schemas_equal(self._schema, action.schema):
            self._requires_new_identifier = True
            self._previous_identifier = self.agent_identifier
            self.instance_id = None
            self._register_key = None
            logger.info("Agent schema changed; next agent start needs a new agent_identifier")
        self._schema = action.schema

    def _register_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.agent_id:
            payload["agent_id"] = self.agent_id
        payload["agent_version"] = {
            "external_identifier": self.agent_identifier,
            "name": self.agent_name or "Agent",
            "description": self.agent_description or "",
        }
        if self._schema is not None:
            payload["agent_schema_version"] = self._schema
        else:
            payload["agent_schema_version"] = {"external_identifier": self.agent_identifier}
        return payload

    async def _ensure_registered(self) -> bool:
        if self.instance_id:
            return True
        if self._register_key is None:
            self._register_key = uuid.uuid4().hex
        response = await self.instances.register(self._register_payload(), self._register_key)
        instance_id = response_id(response)
        if not instance_id:
            logger.error("Agent registration returned no instance id: %r", response)
            return False
        self.instance_id = instance_id
        self._register_key = None
        logger.info("Agent instance registered: %s", instance_id)
        return True

    async def _start_instance(self, action: AgentStart) -> None:
        if self._requires_new_identifier:
            nxt = action.agent_identifier
            if nxt is None or nxt == self._previous_identifier:
                logger.error(
                    "Schema changed; starting an agent requires a new agent_identifier value."
                )
                return
            self._requires_new_identifier = False
            self._previous_identifier = None

        if action.agent_id is not None:
            self.agent_id = action.agent_id
        if action.agent_identifier is not None:
            self.agent_identifier = action.agent_identifier
        if action.agent_name is not None:
            self.agent_name = action.agent_name
        if action.agent_description is not None:
            self.agent_description = action.agent_description

        if not await self._ensure_registered() or not self.instance_id:
            logger.error("Cannot start agent instance: not registered")
            return
        await self.instances.start(self.instance_id, to_iso(time.time()))

    async def _finish_instance(self) -> None:
        # a session must not report finished while span finishes are parked
        for client_id in [c for c in self.pending_finishes if c in self.span_id_map]:
            try:
                await self._finish_span(client_id, self.pending_finishes[client_id])
            except HttpClientError as e:
                if e.retryable:
                    raise
                logger.error("Pending finish for span %s failed: %s", client_id, e)

        if not self.instance_id:
            logger.error("Cannot finish agent instance: not registered")
            return
        try:
            await self.instances.finish(self.instance_id, to_iso(time.time()))
        except HttpClientError as e:
            if e.retryable:
                raise
            logger.error("Error finishing agent instance %s: %s", self.instance_id, e)
        self.instance_id = None

    # ─── spans ───

    def _span_details(self, span: Span) -> Dict[str, Any]:
        result_payload: Optional[Dict[str, Any]] = None
        if span.end_time is not None:
            result_payload = build_span_result_payload(span)
            if span.token_usage is not None:
                result_payload["token_usage"] = span.token_usage.to_dict()
        parent_id = self.span_id_map.get(span.parent_span_id) if span.parent_span_id else None
        return {
            "agent_instance_id": self.instance_id,
            "schema_name": span.span_type.value,
            "status": STATUS_MAP.get(span.status, "active"),
            "payload": _span_payload(span),
            "result_payload": result_payload,
            "parent_span_id": parent_id,
            "started_at": to_iso(span.start_time),
            "finished_at": to_iso(span.end_time) if span.end_time is not None else None,
        }

    async def _send_span(self, span: Span) -> None:
        client_id = span.span_id
        if client_id not in self.span_id_map:
            try:
                await self._ensure_registered()
            except HttpClientError as e:
                if e.retryable:
                    raise
                logger.error(
                    "Agent registration failed; sending span %s without an instance: %s",
                    client_id,
                    e,
                )
            response = await self.spans.create(self._span_details(span), idempotency_key=client_id)
            server_id = response_id(response)
            if not server_id:
                logger.error("Span create for %s returned no id: %r", client_id, response)
                return
            self.span_id_map[client_id] = server_id
        await self._resolve_pending(client_id)

    async def _handle_finish(self, action: SpanFinish) -> None:
        client_id = action.span_id
        if client_id in self._finished:
            return
        if client_id not in self.span_id_map:
            self.pending_finishes[client_id] = action
            logger.debug("Span %s not created yet; finish parked", client_id)
            return
        await self._finish_span(client_id, action)

    async def _resolve_pending(self, client_id: str) -> None:
        action = self.pending_finishes.get(client_id)
        if action is None:
            return
        try:
            await self._finish_span(client_id, action)
        except HttpClientError as e:
            if e.retryable:
                raise
            logger.error("Pending finish for span %s failed: %s", client_id, e)

    async def _finish_span(self, client_id: str, action: SpanFinish) -> None:
        if client_id in self._finished:
            self.pending_finishes.pop(client_id, None)
            return
        outputs = action.error.to_dict() if action.error is not None else action.outputs
        await self.spans.finish(
            self.span_id_map[client_id],
            to_iso(action.end_time),
            STATUS_MAP.get(action.status, "complete"),
            idempotency_key=f"{client_id}-finish",
            outputs=outputs,
        )
        self._finished.add(client_id)
        self.pending_finishes.pop(client_id, None)


def _span_payload(span: Span) -> Dict[str, Any]:
    """The client-side span record carried as the create ``payload``."""
    return {
        "span_id": span.span_id,
        "trace_id": span.trace_id,
        "name": span.name,
        "status": STATUS_MAP.get(span.status, "active"),
        "inputs": span.inputs,
        "outputs": span.outputs,
        "metadata": span.metadata,
        "tags": span.tags,
        "token_usage": span.token_usage.to_dict() if span.token_usage is not None else None,
        "error": span.error.to_dict() if span.error is not None else None,
    }
