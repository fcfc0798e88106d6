"""
SDK configuration.

Build it in code or load it from environment variables (``.env`` supported).
Transport: "http" (remote collector API) or "stdio" (line-delimited JSON on
stdout, for host processes that forward records themselves).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

logger = logging.getLogger("prefactor_sdk.config")

DEFAULT_RETRY_ON_STATUS_CODES: List[int] = [429] + list(range(500, 600))


class ConfigError(ValueError):
    """Invalid SDK configuration."""


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("Ignoring invalid integer %r; using %r", value, default)
        return default


def _to_float(value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError:
        logger.warning("Ignoring invalid number %r; using %r", value, default)
        return default


def parse_status_codes(value: Optional[str]) -> Optional[List[int]]:
    """Parse ``"429,500,503"``; invalid entries are skipped, empty -> None."""
    if value is None or not value.strip():
        return None
    codes: List[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            code = int(part)
        except ValueError:
            continue
        if 100 <= code <= 599:
            codes.append(code)
    return codes or None


# ──────────────────────────────────────────────
# HTTP transport
# ──────────────────────────────────────────────


@dataclass
class HttpTransportConfig:
    """Collector endpoint and delivery policy.

    Attributes:
        api_url: Base URL of the collector API.
        api_token: Bearer token.
        agent_id: Agent id sent on instance registration.
        agent_identifier: External version identifier of the agent.
        agent_name / agent_description: Human-readable agent version info.
        agent_schema: Schema registered up front (optional).
        request_timeout: Per-request timeout, seconds.
        max_retries: Retries after the first attempt.
        initial_retry_delay / max_retry_delay: Backoff bounds, seconds.
        retry_multiplier: Exponential backoff base.
        retry_on_status_codes: HTTP statuses treated as transient.
    """

    api_url: str
    api_token: str
    agent_id: Optional[str] = None
    agent_identifier: str = "v1.0.0"
    agent_name: Optional[str] = None
    agent_description: Optional[str] = None
    agent_schema: Optional[Dict[str, Any]] = None
    request_timeout: float = 30.0
    max_retries: int = 3
    initial_retry_delay: float = 1.0
    max_retry_delay: float = 60.0
    retry_multiplier: float = 2.0
    retry_on_status_codes: List[int] = field(
        default_factory=lambda: list(DEFAULT_RETRY_ON_STATUS_CODES)
    )

    def validate(self) -> None:
        parsed = urlparse(self.api_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"api_url must be an http(s) URL, got {self.api_url!r}")
        if not self.api_token:
            raise ConfigError("api_token is required")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be > 0")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.initial_retry_delay < 0 or self.max_retry_delay < 0:
            raise ConfigError("retry delays must be >= 0")
        if self.retry_multiplier < 1:
            raise ConfigError("retry_multiplier must be >= 1")
        bad = [c for c in self.retry_on_status_codes if not 100 <= c <= 599]
        if bad:
            raise ConfigError(f"invalid retry status codes: {bad}")

    def summary(self) -> str:
        """Readable summary with the token masked."""
        token_display = f"{self.api_token[:6]}..." if self.api_token else "not set"
        return (
            f"API: {self.api_url}\n"
            f"Token: {token_display}\n"
            f"Agent: {self.agent_id or '-'} ({self.agent_identifier})\n"
            f"Timeout: {self.request_timeout}s\n"
            f"Retries: {self.max_retries} "
            f"(delay {self.initial_retry_delay}s x{self.retry_multiplier}, max {self.max_retry_delay}s)"
        )

    @classmethod
    def from_env(cls) -> Optional["HttpTransportConfig"]:
        """Read ``PREFACTOR_*`` HTTP settings; None when url or token is missing."""
        api_url = os.getenv("PREFACTOR_API_URL", "").strip()
        api_token = os.getenv("PREFACTOR_API_TOKEN", "").strip()
        if not api_url or not api_token:
            return None
        defaults = cls(api_url=api_url, api_token=api_token)
        return cls(
            api_url=api_url,
            api_token=api_token,
            agent_id=os.getenv("PREFACTOR_AGENT_ID", "").strip() or None,
            agent_identifier=(
                os.getenv("PREFACTOR_AGENT_IDENTIFIER", "").strip() or defaults.agent_identifier
            ),
            agent_name=os.getenv("PREFACTOR_AGENT_NAME", "").strip() or None,
            agent_description=os.getenv("PREFACTOR_AGENT_DESCRIPTION", "").strip() or None,
            request_timeout=_to_float(
                os.getenv("PREFACTOR_REQUEST_TIMEOUT"), defaults.request_timeout
            ),
            max_retries=_to_int(os.getenv("PREFACTOR_MAX_RETRIES"), defaults.max_retries),
            retry_on_status_codes=(
                parse_status_codes(os.getenv("PREFACTOR_RETRY_ON_STATUS_CODES"))
                or defaults.retry_on_status_codes
            ),
        )


# ──────────────────────────────────────────────
# SDK
# ──────────────────────────────────────────────


@dataclass
class SDKConfig:
    """Runtime configuration."""

    # ── transport ──
    transport_type: str = "http"  # "http" | "stdio"
    http_config: Optional[HttpTransportConfig] = None

    # ── capture ──
    sample_rate: float = 1.0
    capture_inputs: bool = True
    capture_outputs: bool = True
    max_input_length: int = 10000
    max_output_length: int = 10000

    # ── delivery ──
    batch_size: int = 50
    flush_interval: float = 1.0
    close_timeout: Optional[float] = None  # None: flush_interval * 50
    queue_maxsize: int = 0

    # ── logging ──
    log_level: str = ""

    def validate(self) -> None:
        if self.transport_type not in ("http", "stdio"):
            raise ConfigError(f"transport_type must be 'http' or 'stdio', got {self.transport_type!r}")
        if self.transport_type == "http":
            if self.http_config is None:
                raise ConfigError("http transport requires http_config")
            self.http_config.validate()
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ConfigError("sample_rate must be between 0.0 and 1.0")
        if self.max_input_length < 1 or self.max_output_length < 1:
            raise ConfigError("max lengths must be >= 1")
        if self.batch_size < 1:
            raise ConfigError("batch_size must be >= 1")
        if self.flush_interval <= 0:
            raise ConfigError("flush_interval must be > 0")
        if self.queue_maxsize < 0:
            raise ConfigError("queue_maxsize must be >= 0")

    @classmethod
    def from_env(cls, env_file: str = ".env") -> SDKConfig:
        """
        Load configuration from a ``.env`` file and the environment.

        Environment variables take precedence over the file.
        """
        load_dotenv(env_file, override=False)

        transport_type = os.getenv("PREFACTOR_TRANSPORT", "http").strip().lower()
        if transport_type not in {"http", "stdio"}:
            logger.warning("Unknown PREFACTOR_TRANSPORT %r; using http", transport_type)
            transport_type = "http"

        sample_rate = _to_float(os.getenv("PREFACTOR_SAMPLE_RATE"), 1.0)
        if not 0.0 <= sample_rate <= 1.0:
            sample_rate = 1.0

        return cls(
            transport_type=transport_type,
            http_config=HttpTransportConfig.from_env(),
            sample_rate=sample_rate,
            capture_inputs=_to_bool(os.getenv("PREFACTOR_CAPTURE_INPUTS"), True),
            capture_outputs=_to_bool(os.getenv("PREFACTOR_CAPTURE_OUTPUTS"), True),
            max_input_length=_to_int(os.getenv("PREFACTOR_MAX_INPUT_LENGTH"), 10000),
            max_output_length=_to_int(os.getenv("PREFACTOR_MAX_OUTPUT_LENGTH"), 10000),
            batch_size=_to_int(os.getenv("PREFACTOR_BATCH_SIZE"), 50),
            flush_interval=_to_float(os.getenv("PREFACTOR_FLUSH_INTERVAL"), 1.0),
            log_level=os.getenv("PREFACTOR_LOG_LEVEL", "").strip(),
        )

    def summary(self) -> str:
        lines = [
            f"Transport: {self.transport_type.upper()}",
            f"Sample rate: {self.sample_rate}",
            f"Capture: inputs={self.capture_inputs} outputs={self.capture_outputs}",
            f"Batch: {self.batch_size} every {self.flush_interval}s",
        ]
        if self.http_config is not None:
            lines.append(self.http_config.summary())
        return "\n".join(lines)
