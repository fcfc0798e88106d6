"""Process-level shutdown hooks and the active runtime."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, Optional

from prefactor_sdk.core.runtime import CoreRuntime
from prefactor_sdk.tracing.active import clear_active_tracer, set_active_tracer

logger = logging.getLogger("prefactor_sdk.core")

_shutdown_handlers: Dict[str, Callable[[], Any]] = {}
_active_runtime: Optional[CoreRuntime] = None


def register_shutdown_handler(key: str, handler: Callable[[], Any]) -> Callable[[], None]:
    """Register *handler* (sync or async) under *key*; returns an unregister function.

    Re-registering a key replaces its handler and keeps its position.
    """
    _shutdown_handlers[key] = handler

    def unregister() -> None:
        if _shutdown_handlers.get(key) is handler:
            del _shutdown_handlers[key]

    return unregister


def set_active_runtime(runtime: Optional[CoreRuntime]) -> None:
    """Make *runtime* (and its tracer) the process default."""
    global _active_runtime
    _active_runtime = runtime
    if runtime is not None:
        set_active_tracer(runtime.tracer)
    else:
        clear_active_tracer()


def get_active_runtime() -> Optional[CoreRuntime]:
    return _active_runtime


async def shutdown() -> None:
    """Run shutdown handlers in registration order, then shut down the active runtime."""
    global _active_runtime
    for key, handler in list(_shutdown_handlers.items()):
        try:
            result = handler()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Shutdown handler %r failed: %s", key, e, exc_info=True)

    runtime, _active_runtime = _active_runtime, None
    if runtime is not None:
        await runtime.shutdown()

    clear_active_tracer()
