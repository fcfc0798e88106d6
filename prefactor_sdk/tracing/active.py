"""Process-wide active tracer, used when no tracer is passed explicitly."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from prefactor_sdk.tracing.tracer import Tracer

_active_tracer: Optional["Tracer"] = None


def set_active_tracer(tracer: "Tracer") -> None:
    global _active_tracer
    _active_tracer = tracer


def get_active_tracer() -> Optional["Tracer"]:
    return _active_tracer


def clear_active_tracer(tracer: Optional["Tracer"] = None) -> None:
    """Clear the active tracer; with *tracer*, only if it is the active one."""
    global _active_tracer
    if tracer is None or _active_tracer is tracer:
        _active_tracer = None
