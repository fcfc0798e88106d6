"""
Runtime tests — create_core wiring, end-to-end delivery, lifecycle hooks.
"""

import io
import json
import logging
from urllib.parse import urlparse

import pytest

from prefactor_sdk.core import lifecycle
from prefactor_sdk.core.config import ConfigError, HttpTransportConfig, SDKConfig
from prefactor_sdk.core.runtime import create_core
from prefactor_sdk.tracing.active import get_active_tracer
from prefactor_sdk.tracing.span import SpanType
from prefactor_sdk.transport.http.sender import HttpResponse, InProcessSender
from prefactor_sdk.transport.http.transport import HttpTransport
from prefactor_sdk.transport.stdio import LINE_PREFIX, StdioTransport
from prefactor_sdk.utils import ids


class RecordingCollector:
    def __init__(self):
        self.requests = []
        self._seq = 0

    def __call__(self, method, url, headers, body):
        path = urlparse(url).path
        self.requests.append((path, json.loads(body) if body else None))
        if path.endswith("/agent_instance/register"):
            return HttpResponse.json_response(200, {"details": {"id": "inst-1"}})
        if path.endswith("/agent_spans"):
            self._seq += 1
            return HttpResponse.json_response(200, {"details": {"id": f"srv-{self._seq}"}})
        return HttpResponse.json_response(200, {})

    def paths(self):
        return [path for path, _ in self.requests]


@pytest.fixture(autouse=True)
def reset_lifecycle():
    yield
    lifecycle._shutdown_handlers.clear()
    lifecycle.set_active_runtime(None)


def stdio_config(**overrides):
    defaults = dict(transport_type="stdio", flush_interval=0.01)
    defaults.update(overrides)
    return SDKConfig(**defaults)


def http_sdk_config(**http_overrides):
    http = dict(api_url="https://collector.example.com", api_token="tok", max_retries=0)
    http.update(http_overrides)
    return SDKConfig(http_config=HttpTransportConfig(**http), flush_interval=0.01)


# ══════════════════════════════════════════════
# create_core
# ══════════════════════════════════════════════


class TestCreateCore:

    @pytest.mark.asyncio
    async def test_stdio_runtime(self):
        runtime = create_core(stdio_config())
        stream = io.StringIO()
        runtime.transport.stream = stream
        assert isinstance(runtime.transport, StdioTransport)
        assert runtime.worker.running

        with runtime.tracer.span("step", SpanType.TOOL, inputs={"q": 1}) as span:
            span.outputs = {"a": 2}
        assert await runtime.flush(2.0)

        lines = stream.getvalue().splitlines()
        record = json.loads(lines[0][len(LINE_PREFIX):])
        assert record["type"] == "span_end"
        assert record["data"]["outputs"] == {"a": 2}

        await runtime.shutdown()
        assert runtime.shut_down
        assert not runtime.worker.running
        await runtime.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_config_rejected(self):
        with pytest.raises(ConfigError):
            create_core(SDKConfig(transport_type="http"))

    @pytest.mark.asyncio
    async def test_partition_from_pfid_agent_id(self):
        agent_id = ids.generate("0badcafe")
        runtime = create_core(http_sdk_config(agent_id=agent_id))
        try:
            assert runtime.tracer.partition == "0badcafe"
            span = runtime.tracer.start_span("x")
            assert ids.extract_partition(span.span_id) == "0badcafe"
        finally:
            runtime.transport.http.sender = InProcessSender(RecordingCollector())
            await runtime.shutdown()

    @pytest.mark.asyncio
    async def test_non_pfid_agent_id_gets_random_partition(self):
        runtime = create_core(http_sdk_config(agent_id="my-agent"))
        assert ids.is_pfid(ids.generate(runtime.tracer.partition))
        await runtime.shutdown()

    @pytest.mark.asyncio
    async def test_preset_schema_registered(self):
        schema = {"type": "object"}
        runtime = create_core(http_sdk_config(agent_schema=schema))
        runtime.transport.http.sender = InProcessSender(RecordingCollector())
        assert runtime.agent_manager.registered_schema == schema
        assert runtime.agent_manager.allow_unregistered_schema
        await runtime.shutdown()


# ══════════════════════════════════════════════
# End to end over HTTP
# ══════════════════════════════════════════════


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_agent_run_delivered(self):
        collector = RecordingCollector()
        runtime = create_core(http_sdk_config(agent_identifier="v1"))
        assert isinstance(runtime.transport, HttpTransport)
        runtime.transport.http.sender = InProcessSender(collector)

        manager = runtime.agent_manager
        manager.register_schema({"type": "object"})
        manager.start_instance()
        with runtime.tracer.span("run", SpanType.AGENT, inputs={"task": "t"}):
            with runtime.tracer.span("call", SpanType.LLM) as llm:
                llm.outputs = {"text": "ok"}
        manager.finish_instance()

        assert await runtime.flush(2.0)
        await runtime.shutdown()

        assert collector.paths() == [
            "/api/v1/agent_instance/register",
            "/api/v1/agent_instance/inst-1/start",
            "/api/v1/agent_spans",
            "/api/v1/agent_spans",
            "/api/v1/agent_spans/srv-1/finish",
            "/api/v1/agent_instance/inst-1/finish",
        ]
        agent_create = collector.requests[2][1]["details"]
        llm_create = collector.requests[3][1]["details"]
        assert agent_create["schema_name"] == "agent"
        assert agent_create["status"] == "active"
        assert llm_create["parent_span_id"] == "srv-1"
        assert llm_create["result_payload"] == {"text": "ok"}


# ══════════════════════════════════════════════
# Lifecycle
# ══════════════════════════════════════════════


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_handlers_run_in_order_and_failures_logged(self, caplog):
        calls = []

        async def async_handler():
            calls.append("async")

        def broken():
            raise RuntimeError("handler broke")

        lifecycle.register_shutdown_handler("first", lambda: calls.append("first"))
        lifecycle.register_shutdown_handler("broken", broken)
        lifecycle.register_shutdown_handler("second", async_handler)

        with caplog.at_level(logging.ERROR, logger="prefactor_sdk"):
            await lifecycle.shutdown()
        assert calls == ["first", "async"]
        assert "handler broke" in caplog.text

    @pytest.mark.asyncio
    async def test_unregister(self):
        calls = []
        unregister = lifecycle.register_shutdown_handler("h", lambda: calls.append(1))
        unregister()
        await lifecycle.shutdown()
        assert calls == []

    @pytest.mark.asyncio
    async def test_active_runtime_shut_down(self):
        runtime = create_core(stdio_config())
        runtime.transport.stream = io.StringIO()
        lifecycle.set_active_runtime(runtime)
        assert lifecycle.get_active_runtime() is runtime
        assert get_active_tracer() is runtime.tracer

        await lifecycle.shutdown()
        assert runtime.shut_down
        assert lifecycle.get_active_runtime() is None
        assert get_active_tracer() is None

    @pytest.mark.asyncio
    async def test_shutdown_without_runtime(self):
        await lifecycle.shutdown()
        assert lifecycle.get_active_runtime() is None
