"""
HTTP delivery to the collector API.

Usage::

    from prefactor_sdk.transport.http import HttpTransport, InProcessSender, HttpClient

    client = HttpClient(config, sender=InProcessSender(handler))
    transport = HttpTransport(config, client=client)
"""

from prefactor_sdk.transport.http.client import HttpClient, HttpClientError
from prefactor_sdk.transport.http.endpoints import AgentInstanceClient, AgentSpanClient
from prefactor_sdk.transport.http.retry import calculate_retry_delay, should_retry_status
from prefactor_sdk.transport.http.sender import (
    HttpResponse,
    InProcessSender,
    RequestSender,
    UrllibSender,
)
from prefactor_sdk.transport.http.transport import HttpTransport

__all__ = [
    "HttpClient",
    "HttpClientError",
    "AgentInstanceClient",
    "AgentSpanClient",
    "calculate_retry_delay",
    "should_retry_status",
    "HttpResponse",
    "InProcessSender",
    "RequestSender",
    "UrllibSender",
    "HttpTransport",
]
