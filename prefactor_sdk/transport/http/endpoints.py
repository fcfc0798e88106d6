"""Thin wrappers over the collector's agent-instance and agent-span endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from prefactor_sdk.transport.http.client import HttpClient, HttpClientError

logger = logging.getLogger("prefactor_sdk.transport.http")

API_PREFIX = "/api/v1"


def response_id(response: Any) -> Optional[str]:
    """Extract ``details.id`` from a collector response."""
    if not isinstance(response, dict):
        return None
    details = response.get("details")
    if not isinstance(details, dict):
        return None
    value = details.get("id")
    return str(value) if value else None


class AgentInstanceClient:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def register(self, payload: Dict[str, Any], idempotency_key: str) -> Any:
        return await self.http.request(
            f"{API_PREFIX}/agent_instance/register",
            method="POST",
            body={**payload, "idempotency_key": idempotency_key},
        )

    async def start(self, instance_id: str, timestamp: str) -> Any:
        return await self.http.request(
            f"{API_PREFIX}/agent_instance/{instance_id}/start",
            method="POST",
            body={"timestamp": timestamp, "idempotency_key": f"{instance_id}-start"},
        )

    async def finish(self, instance_id: str, timestamp: str, status: str = "complete") -> Any:
        return await self.http.request(
            f"{API_PREFIX}/agent_instance/{instance_id}/finish",
            method="POST",
            body={
                "status": status,
                "timestamp": timestamp,
                "idempotency_key": f"{instance_id}-finish",
            },
        )


class AgentSpanClient:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def create(self, details: Dict[str, Any], idempotency_key: str) -> Any:
        return await self.http.request(
            f"{API_PREFIX}/agent_spans",
            method="POST",
            body={"details": details, "idempotency_key": idempotency_key},
        )

    async def finish(
        self,
        server_span_id: str,
        timestamp: str,
        status: str,
        idempotency_key: str,
        outputs: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Finish a span; a span the server already finished counts as success."""
        body: Dict[str, Any] = {
            "timestamp": timestamp,
            "status": status,
            "idempotency_key": idempotency_key,
        }
        if outputs is not None:
            body["outputs"] = outputs
        try:
            await self.http.request(
                f"{API_PREFIX}/agent_spans/{server_span_id}/finish",
                method="POST",
                body=body,
            )
        except HttpClientError as e:
            if e.status == 409 and _is_already_finished(e.response_body):
                logger.debug("Span %s already finished on the server", server_span_id)
                return
            raise


def _is_already_finished(body: Any) -> bool:
    return isinstance(body, dict) and body.get("code") == "invalid_action"
