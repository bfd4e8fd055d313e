# src/timeout_wrapper/context.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from typing_extensions import NotRequired, TypedDict

from timeout_wrapper.errors import ConfigurationError
from timeout_wrapper.orchestrator import create_timeout_wrapper

EventHandler = Callable[[Any, Any], Awaitable[Any]]


class TimeoutHandlers(TypedDict):
    # Main function, called as run(event, context)
    run: EventHandler

    # Called after cleanup once the safety margin is breached
    on_timeout: EventHandler

    # Optional best-effort cleanup, bounded by cleanup_time_ms
    on_cleanup: NotRequired[EventHandler]

    # Wrapper options (safety_margin_ms, use_fallback_stopwatch, log_sink, ...)
    options: NotRequired[Dict[str, Any]]


async def with_timeout(event: Any, context: Any, handlers: TimeoutHandlers) -> Any:
    """
    Runs handlers["run"] for a serverless invocation, using the context's
    get_remaining_time_in_millis() unless options supply another source.
    """
    run = handlers.get("run")
    if run is None or not callable(run):
        raise ConfigurationError("handlers['run'] must be a function")

    options = dict(handlers.get("options") or {})
    if "remaining_time_source" not in options:
        source = getattr(context, "get_remaining_time_in_millis", None)
        if source is None:
            raise ConfigurationError(
                "context has no get_remaining_time_in_millis(); "
                "pass options['remaining_time_source'] instead"
            )
        options["remaining_time_source"] = source

    wrapper = create_timeout_wrapper(**options)

    on_timeout = handlers.get("on_timeout")
    on_cleanup = handlers.get("on_cleanup")

    def _bind(fn):
        if fn is None or not callable(fn):
            return fn
        return lambda: fn(event, context)

    return await wrapper(_bind(run), _bind(on_timeout), _bind(on_cleanup))
