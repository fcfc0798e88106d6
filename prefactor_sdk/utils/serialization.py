"""Helpers that turn captured inputs/outputs into bounded, JSON-safe values."""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping, Optional, Set

TRUNCATION_SUFFIX = "... [truncated]"
CIRCULAR_MARKER = "[Circular]"


def truncate_string(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    return value[:max_length] + TRUNCATION_SUFFIX


def serialize_value(value: Any, max_length: Optional[int] = 10000) -> Any:
    """Recursively convert *value* into something ``json.dumps`` accepts.

    Strings longer than *max_length* are truncated (``None`` disables
    truncation). Mappings, sequences and dataclass fields are walked and
    anything else falls back to ``str()``. A container that
    contains itself is recorded as ``"[Circular]"``.
    """
    return _serialize(value, max_length, set())


def _serialize(value: Any, max_length: Optional[int], seen: Set[int]) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        return truncate_string(value, max_length) if max_length is not None else value

    if isinstance(value, bytes):
        return _serialize(value.decode("utf-8", errors="replace"), max_length, seen)

    is_dataclass = dataclasses.is_dataclass(value) and not isinstance(value, type)
    if is_dataclass or isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if id(value) in seen:
            return CIRCULAR_MARKER
        seen.add(id(value))
        try:
            if is_dataclass:
                items = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
                return {k: _serialize(v, max_length, seen) for k, v in items.items()}
            if isinstance(value, Mapping):
                return {str(k): _serialize(v, max_length, seen) for k, v in value.items()}
            return [_serialize(item, max_length, seen) for item in value]
        finally:
            seen.discard(id(value))

    try:
        text = str(value)
    except Exception:
        return f"<{type(value).__name__} object>"
    return truncate_string(text, max_length) if max_length is not None else text
