"""Retry policy: which failures are transient, and how long to back off."""

from __future__ import annotations

import random as _random
from typing import Callable, Iterable, Optional

JITTER_MIN = 0.5


def should_retry_status(status: int, retry_on_status_codes: Iterable[int]) -> bool:
    return status in retry_on_status_codes


def calculate_retry_delay(
    attempt: int,
    initial_delay: float,
    multiplier: float,
    max_delay: float,
    random: Optional[Callable[[], float]] = None,
) -> float:
    """Seconds to wait before retry number ``attempt + 1``.

    ``min(max_delay, initial_delay * multiplier ** attempt)`` scaled by a
    jitter factor in ``[0.5, 1.0]``.
    """
    base = min(max_delay, initial_delay * multiplier ** attempt)
    rand = random if random is not None else _random.random
    return base * (JITTER_MIN + rand() * JITTER_MIN)
