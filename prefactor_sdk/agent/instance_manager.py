"""
AgentInstanceManager — schema registration gate for agent instances.

An instance can only be started once a schema has been registered (unless
the manager is told otherwise). The first registered schema wins; later
registrations are compared semantically and ignored.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from typing import Any, Dict, Optional

from prefactor_sdk.queue.actions import AgentFinish, AgentStart, QueueAction, SchemaRegister

logger = logging.getLogger("prefactor_sdk.agent")

# JSON Schema keywords whose array values are sets, not sequences
UNORDERED_KEYWORDS = frozenset({"enum", "required", "oneOf", "allOf", "anyOf", "type"})


# ──────────────────────────────────────────────
# Schema equality
# ──────────────────────────────────────────────


def _freeze(value: Any) -> Any:
    """Hashable canonical form of a JSON value."""
    if isinstance(value, dict):
        return ("obj", frozenset((k, _freeze_keyed(k, v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return ("arr", tuple(_freeze(v) for v in value))
    if isinstance(value, bool):
        return ("bool", value)
    return ("val", value)


def _freeze_keyed(key: str, value: Any) -> Any:
    if key in UNORDERED_KEYWORDS and isinstance(value, (list, tuple)):
        counts = Counter(_freeze(v) for v in value)
        return ("set", frozenset(counts.items()))
    return _freeze(value)


def schemas_equal(a: Optional[Dict[str, Any]], b: Optional[Dict[str, Any]]) -> bool:
    """Deep equality ignoring key order and the order of unordered keyword lists."""
    return _freeze(a) == _freeze(b)


# ──────────────────────────────────────────────
# AgentInstanceManager
# ──────────────────────────────────────────────


class AgentInstanceManager:
    """Enqueues schema / instance lifecycle actions.

    Usage::

        manager = AgentInstanceManager(queue)
        manager.register_schema({"type": "object", "properties": {...}})
        manager.start_instance(agent_id=agent_id, agent_identifier="v2")
        ...
        manager.finish_instance()
    """

    def __init__(self, queue: Any, allow_unregistered_schema: bool = False) -> None:
        self.queue = queue
        self.allow_unregistered_schema = allow_unregistered_schema
        self._schema: Optional[Dict[str, Any]] = None
        self._started = False

    @property
    def registered_schema(self) -> Optional[Dict[str, Any]]:
        return self._schema

    @property
    def registered(self) -> bool:
        return self._schema is not None

    @property
    def started(self) -> bool:
        return self._started

    def register_schema(self, schema: Dict[str, Any]) -> None:
        if self._schema is None:
            self._schema = copy.deepcopy(schema)
            self._enqueue(SchemaRegister(schema=self._schema))
            logger.debug("Agent schema registered")
            return
        if not schemas_equal(self._schema, schema):
            logger.warning(
                "A different schema was provided after registration; ignoring subsequent schema."
            )

    def start_instance(
        self,
        agent_id: Optional[str] = None,
        agent_identifier: Optional[str] = None,
        agent_name: Optional[str] = None,
        agent_description: Optional[str] = None,
    ) -> None:
        if not self.allow_unregistered_schema and self._schema is None:
            logger.warning("Schema must be registered before starting an agent instance.")
            return
        if self._started:
            logger.warning("Agent instance already started; call finish_instance() first.")
            return
        self._started = True
        self._enqueue(
            AgentStart(
                agent_id=agent_id,
                agent_identifier=agent_identifier,
                agent_name=agent_name,
                agent_description=agent_description,
            )
        )

    def finish_instance(self) -> None:
        self._started = False
        self._enqueue(AgentFinish())

    def _enqueue(self, action: QueueAction) -> None:
        try:
            self.queue.put_nowait(action)
        except Exception as e:
            logger.error("Failed to enqueue %s action: %s", action.type, e)
