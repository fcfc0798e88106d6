"""
AgentInstanceManager tests — schema gate, dedupe by semantic equality, start/finish.
"""

import logging

import pytest

from prefactor_sdk.agent.instance_manager import AgentInstanceManager, schemas_equal
from prefactor_sdk.queue.actions import AgentStart, SchemaRegister
from prefactor_sdk.queue.memory import InMemoryQueue


@pytest.fixture
def queue():
    return InMemoryQueue()


# ══════════════════════════════════════════════
# Schema equality
# ══════════════════════════════════════════════


class TestSchemasEqual:

    def test_key_order_ignored(self):
        a = {"type": "object", "properties": {"a": {"type": "string"}, "b": {"type": "integer"}}}
        b = {"properties": {"b": {"type": "integer"}, "a": {"type": "string"}}, "type": "object"}
        assert schemas_equal(a, b)

    def test_unordered_keywords(self):
        a = {"required": ["a", "b"], "enum": [1, 2, 3], "type": ["string", "null"]}
        b = {"required": ["b", "a"], "enum": [3, 1, 2], "type": ["null", "string"]}
        assert schemas_equal(a, b)

    def test_any_of_order_ignored(self):
        a = {"anyOf": [{"type": "string"}, {"type": "integer"}]}
        b = {"anyOf": [{"type": "integer"}, {"type": "string"}]}
        assert schemas_equal(a, b)

    def test_other_arrays_order_sensitive(self):
        a = {"prefixItems": [{"type": "string"}, {"type": "integer"}]}
        b = {"prefixItems": [{"type": "integer"}, {"type": "string"}]}
        assert not schemas_equal(a, b)

    def test_multiset_counts_matter(self):
        assert not schemas_equal({"enum": [1, 1, 2]}, {"enum": [1, 2, 2]})

    def test_bool_not_int(self):
        assert not schemas_equal({"const": True}, {"const": 1})

    def test_different_values(self):
        assert not schemas_equal({"type": "object"}, {"type": "array"})


# ══════════════════════════════════════════════
# Manager
# ══════════════════════════════════════════════


class TestAgentInstanceManager:

    def test_schema_then_start(self, queue):
        manager = AgentInstanceManager(queue)
        manager.register_schema({"type": "object"})
        manager.start_instance(agent_id="agent-1")

        items = queue.get_batch(10)
        assert isinstance(items[0], SchemaRegister)
        assert items[0].schema == {"type": "object"}
        assert isinstance(items[1], AgentStart)
        assert items[1].agent_id == "agent-1"
        assert manager.registered and manager.started

    def test_start_without_schema_warns(self, queue, caplog):
        manager = AgentInstanceManager(queue)
        with caplog.at_level(logging.WARNING, logger="prefactor_sdk"):
            manager.start_instance(agent_id="agent-1")
        assert queue.size() == 0
        assert "must be registered before starting an agent instance" in caplog.text
        assert not manager.started

    def test_start_without_schema_when_allowed(self, queue, caplog):
        manager = AgentInstanceManager(queue, allow_unregistered_schema=True)
        with caplog.at_level(logging.WARNING, logger="prefactor_sdk"):
            manager.start_instance(agent_id="agent-1", agent_identifier="v2")
        items = queue.get_batch(10)
        assert len(items) == 1
        assert items[0].agent_identifier == "v2"
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_identical_schema_deduped_silently(self, queue, caplog):
        manager = AgentInstanceManager(queue)
        manager.register_schema({"type": "object", "required": ["a", "b"]})
        with caplog.at_level(logging.WARNING, logger="prefactor_sdk"):
            manager.register_schema({"required": ["b", "a"], "type": "object"})
        assert queue.size() == 1
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_different_schema_ignored_with_warning(self, queue, caplog):
        manager = AgentInstanceManager(queue)
        first = {"type": "object"}
        manager.register_schema(first)
        with caplog.at_level(logging.WARNING, logger="prefactor_sdk"):
            manager.register_schema({"type": "array"})
        assert queue.size() == 1
        assert manager.registered_schema == first
        assert "different schema" in caplog.text

    def test_caller_mutation_does_not_change_registered_schema(self, queue):
        manager = AgentInstanceManager(queue)
        schema = {"type": "object", "properties": {"a": {"type": "string"}}}
        manager.register_schema(schema)
        schema["properties"]["a"]["type"] = "integer"
        schema["required"] = ["a"]
        assert manager.registered_schema == {
            "type": "object",
            "properties": {"a": {"type": "string"}},
        }
        assert queue.get_batch(10)[0].schema == manager.registered_schema

    def test_repeated_start_is_noop(self, queue, caplog):
        manager = AgentInstanceManager(queue, allow_unregistered_schema=True)
        manager.start_instance()
        with caplog.at_level(logging.WARNING, logger="prefactor_sdk"):
            manager.start_instance()
        assert queue.size() == 1
        assert "already started" in caplog.text

    def test_finish_always_forwards_and_allows_restart(self, queue):
        manager = AgentInstanceManager(queue, allow_unregistered_schema=True)
        manager.finish_instance()
        manager.start_instance()
        manager.finish_instance()
        manager.start_instance()
        types = [a.type for a in queue.get_batch(10)]
        assert types == ["agent_finish", "agent_start", "agent_finish", "agent_start"]

    def test_closed_queue_logged(self, queue, caplog):
        manager = AgentInstanceManager(queue)
        queue.close()
        with caplog.at_level(logging.ERROR, logger="prefactor_sdk"):
            manager.register_schema({"type": "object"})
        assert "Failed to enqueue schema_register" in caplog.text
