"""
CoreRuntime — one explicit handle for the whole tracing pipeline.

Usage::

    async def main():
        runtime = create_core(SDKConfig.from_env())
        runtime.agent_manager.register_schema(schema)
        runtime.agent_manager.start_instance()

        with runtime.tracer.span("run", SpanType.AGENT):
            ...

        runtime.agent_manager.finish_instance()
        await runtime.shutdown()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from prefactor_sdk.agent.instance_manager import AgentInstanceManager
from prefactor_sdk.core.config import ConfigError, SDKConfig
from prefactor_sdk.queue.memory import InMemoryQueue
from prefactor_sdk.tracing.tracer import Tracer
from prefactor_sdk.transport.base import Transport
from prefactor_sdk.transport.http.transport import HttpTransport
from prefactor_sdk.transport.stdio import StdioTransport
from prefactor_sdk.transport.worker import TransportWorker
from prefactor_sdk.utils import ids
from prefactor_sdk.utils.logger import configure_logging

logger = logging.getLogger("prefactor_sdk.core")


@dataclass
class CoreRuntime:
    tracer: Tracer
    agent_manager: AgentInstanceManager
    queue: InMemoryQueue
    worker: TransportWorker
    transport: Transport
    close_timeout: Optional[float] = None
    _shut_down: bool = field(default=False, repr=False)

    @property
    def shut_down(self) -> bool:
        return self._shut_down

    async def flush(self, timeout: float = 5.0) -> bool:
        """Wait until everything enqueued so far has been delivered."""
        return await self.worker.flush(timeout)

    async def shutdown(self) -> None:
        """Drain and close the pipeline. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        await self.worker.close(self.close_timeout)
        logger.info("Prefactor runtime shut down")


def _build_transport(config: SDKConfig) -> Transport:
    if config.transport_type == "stdio":
        return StdioTransport()
    if config.http_config is None:
        raise ConfigError("HTTP transport requires http_config to be provided in configuration")
    return HttpTransport(config.http_config)


def create_core(config: SDKConfig) -> CoreRuntime:
    """Build and start the pipeline. Must be called with a running event loop."""
    config.validate()
    if config.log_level:
        configure_logging(config.log_level)

    transport = _build_transport(config)
    queue: InMemoryQueue = InMemoryQueue(maxsize=config.queue_maxsize)
    worker = TransportWorker(
        queue,
        transport,
        batch_size=config.batch_size,
        interval=config.flush_interval,
    )

    partition: Optional[str] = None
    http_config = config.http_config
    if http_config is not None and http_config.agent_id:
        try:
            partition = ids.extract_partition(http_config.agent_id)
        except ValueError:
            partition = None

    tracer = Tracer(
        queue,
        partition,
        worker=worker,
        sample_rate=config.sample_rate,
        capture_inputs=config.capture_inputs,
        capture_outputs=config.capture_outputs,
        max_input_length=config.max_input_length,
        max_output_length=config.max_output_length,
    )

    preset_schema = http_config.agent_schema if http_config is not None else None
    agent_manager = AgentInstanceManager(
        queue, allow_unregistered_schema=preset_schema is not None
    )
    if preset_schema is not None:
        agent_manager.register_schema(preset_schema)

    worker.start()
    logger.info("Prefactor runtime started (%s transport)", config.transport_type)
    return CoreRuntime(
        tracer=tracer,
        agent_manager=agent_manager,
        queue=queue,
        worker=worker,
        transport=transport,
        close_timeout=config.close_timeout,
    )
