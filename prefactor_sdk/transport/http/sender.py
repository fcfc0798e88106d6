"""Request senders — the raw request/response layer under HttpClient."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger("prefactor_sdk.transport.http")

_MAX_ERROR_BODY = 128 * 1024  # 128KB


@dataclass
class HttpResponse:
    status: int
    reason: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def json_response(cls, status: int, payload: Any, reason: str = "") -> HttpResponse:
        """Build a JSON response (handy for in-process collectors)."""
        body = b"" if payload is None else json.dumps(payload).encode("utf-8")
        return cls(
            status=status,
            reason=reason,
            headers={"Content-Type": "application/json"},
            body=body,
        )


# ──────────────────────────────────────────────
# Sender Protocol
# ──────────────────────────────────────────────


@runtime_checkable
class RequestSender(Protocol):
    """Send one HTTP request.

    Non-2xx statuses are returned as responses; only connection-level
    failures (refused, reset, timeout) raise.
    """

    async def send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[bytes],
        timeout: float,
    ) -> HttpResponse:
        ...


# ──────────────────────────────────────────────
# UrllibSender
# ──────────────────────────────────────────────


class UrllibSender:
    """RequestSender over ``urllib.request``.

    Runs the blocking call in ``asyncio.to_thread`` so the event loop keeps
    serving the application while a batch is in flight.
    """

    async def send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[bytes],
        timeout: float,
    ) -> HttpResponse:
        return await asyncio.to_thread(self._sync_send, method, url, headers, body, timeout)

    def _sync_send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[bytes],
        timeout: float,
    ) -> HttpResponse:
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return HttpResponse(
                    status=resp.status,
                    reason=resp.reason or "",
                    headers=dict(resp.headers.items()),
                    body=resp.read(),
                )
        except urllib.error.HTTPError as e:
            raw = b""
            try:
                raw = e.read(_MAX_ERROR_BODY)
            except OSError as read_err:
                logger.debug("Could not read error body from %s: %s", url, read_err)
            return HttpResponse(
                status=e.code,
                reason=str(e.reason or ""),
                headers=dict(e.headers.items()) if e.headers else {},
                body=raw,
            )


# ──────────────────────────────────────────────
# InProcessSender
# ──────────────────────────────────────────────


SenderHandler = Callable[
    [str, str, Dict[str, str], Optional[bytes]],
    Union[HttpResponse, Awaitable[HttpResponse]],
]


class InProcessSender:
    """RequestSender that delegates to a handler function directly.

    Used for deterministic testing and for embedding a collector in-process.
    The handler receives ``(method, url, headers, body)`` and may be sync or
    async.
    """

    def __init__(self, handler: SenderHandler) -> None:
        self.handler = handler

    async def send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[bytes],
        timeout: float,
    ) -> HttpResponse:
        result = self.handler(method, url, headers, body)
        if inspect.isawaitable(result):
            result = await result
        return result
