"""HttpClient — JSON requests against the collector API with retry/backoff."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import urlencode, urljoin

from prefactor_sdk.core.config import HttpTransportConfig
from prefactor_sdk.transport.http.retry import calculate_retry_delay, should_retry_status
from prefactor_sdk.transport.http.sender import HttpResponse, RequestSender, UrllibSender

logger = logging.getLogger("prefactor_sdk.transport.http")

# OSError covers URLError, ConnectionError and socket timeouts
_NETWORK_ERRORS = (OSError, asyncio.TimeoutError)

_MAX_PREVIEW = 512


# ──────────────────────────────────────────────
# HttpClientError
# ──────────────────────────────────────────────


class HttpClientError(Exception):
    """A request that failed for good (non-2xx after retries, or network)."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        method: str,
        status: Optional[int] = None,
        status_text: str = "",
        retryable: bool = False,
        response_body: Any = None,
    ) -> None:
        self.url = url
        self.method = method
        self.status = status
        self.status_text = status_text
        self.retryable = retryable
        self.response_body = response_body
        super().__init__(message)

    def __str__(self) -> str:
        base = f"{self.args[0]} ({self.method} {self.url})"
        if self.response_body is not None:
            preview = self.response_body
            if not isinstance(preview, str):
                preview = json.dumps(preview, default=str)
            if len(preview) > _MAX_PREVIEW:
                preview = preview[:_MAX_PREVIEW] + "..."
            base += f": {preview}"
        return base


def _parse_body(resp: HttpResponse) -> Any:
    if not resp.body:
        return None
    text = resp.body.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


# ──────────────────────────────────────────────
# HttpClient
# ──────────────────────────────────────────────


class HttpClient:
    """Authenticated JSON client.

    Retries network errors and the configured transient statuses with
    exponential backoff and jitter, up to ``config.max_retries`` times.

    Parameters:
        config: Endpoint, token and retry policy.
        sender: Raw request layer (default: :class:`UrllibSender`).
        sleep: Awaitable sleep used for backoff (default ``asyncio.sleep``).
        random: ``() -> float`` in [0, 1) used for jitter.

    Usage::

        client = HttpClient(config)
        data = await client.request("/api/v1/agent_spans", method="POST", body=payload)
    """

    def __init__(
        self,
        config: HttpTransportConfig,
        sender: Optional[RequestSender] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        random: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config
        self.sender = sender or UrllibSender()
        self._sleep = sleep or asyncio.sleep
        self._random = random

    def build_url(self, path: str, query: Optional[Mapping[str, Any]] = None) -> str:
        url = urljoin(self.config.api_url, path)
        if query:
            params = {k: v for k, v in query.items() if v is not None}
            if params:
                url += ("&" if "?" in url else "?") + urlencode(params, doseq=True)
        return url

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and return the parsed response body.

        JSON bodies are decoded, other bodies returned as text, empty as None.

        Raises:
            HttpClientError: the request failed after all retries.
        """
        method = method.upper()
        url = self.build_url(path, query)
        timeout = timeout if timeout is not None else self.config.request_timeout

        req_headers: Dict[str, str] = dict(headers or {})
        req_headers["Authorization"] = f"Bearer {self.config.api_token}"
        data: Optional[bytes] = None
        if body is not None and method != "GET":
            data = json.dumps(body).encode("utf-8")
            if not any(k.lower() == "content-type" for k in req_headers):
                req_headers["Content-Type"] = "application/json"
        req_headers.setdefault("Accept", "application/json")

        attempt = 0
        while True:
            try:
                resp = await asyncio.wait_for(
                    self.sender.send(method, url, req_headers, data, timeout),
                    timeout=timeout,
                )
            except _NETWORK_ERRORS as e:
                if attempt < self.config.max_retries:
                    await self._backoff(attempt, method, url, f"network error: {e!r}")
                    attempt += 1
                    continue
                raise HttpClientError(
                    "HTTP request failed due to network error",
                    url=url,
                    method=method,
                    retryable=True,
                ) from e

            if resp.ok:
                return _parse_body(resp)

            response_body = _parse_body(resp)
            retryable = should_retry_status(resp.status, self.config.retry_on_status_codes)
            if retryable and attempt < self.config.max_retries:
                await self._backoff(attempt, method, url, f"status {resp.status}")
                attempt += 1
                continue

            raise HttpClientError(
                f"HTTP request failed with status {resp.status}",
                url=url,
                method=method,
                status=resp.status,
                status_text=resp.reason,
                retryable=retryable,
                response_body=response_body,
            )

    async def _backoff(self, attempt: int, method: str, url: str, cause: str) -> None:
        delay = calculate_retry_delay(
            attempt,
            self.config.initial_retry_delay,
            self.config.retry_multiplier,
            self.config.max_retry_delay,
            self._random,
        )
        logger.debug(
            "%s %s failed (%s); retry %d/%d in %.3fs",
            method,
            url,
            cause,
            attempt + 1,
            self.config.max_retries,
            delay,
        )
        await self._sleep(delay)
