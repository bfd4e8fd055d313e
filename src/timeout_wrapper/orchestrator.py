# src/timeout_wrapper/orchestrator.py
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import ValidationError

from timeout_wrapper.checker import DeadlineChecker, PeriodicTimer
from timeout_wrapper.config import Settings
from timeout_wrapper.errors import ConfigurationError
from timeout_wrapper.schemas import InvocationState, TimeoutOptions, TimerMode, describe_errors
from timeout_wrapper.shutdown import run_shutdown
from timeout_wrapper.utils.logging import Logger, as_logger
from timeout_wrapper.utils.timebox import FallbackStopwatch

T = TypeVar("T")


class TimeoutWrapper:
    """
    Races a unit of work against the host's remaining time.

    Options are bound at construction and validated on the first call, so a
    misconfigured wrapper only fails when it is actually used.
    """

    def __init__(self, options: Dict[str, Any]):
        self._raw_options = dict(options)
        self._options: Optional[TimeoutOptions] = None
        self.logger: Logger = as_logger(self._raw_options.get("log_sink"))

        eff = {
            name: self._raw_options.get(name, field.default)
            for name, field in TimeoutOptions.model_fields.items()
        }
        mode = TimerMode.FALLBACK if eff["use_fallback_stopwatch"] else TimerMode.CONTEXT
        self.logger.info(
            "Timeout wrapper initialized with settings: "
            f"safety margin={eff['safety_margin_ms']}ms, "
            f"check interval={eff['check_interval_ms']}ms, "
            f"cleanup time={eff['cleanup_time_ms']}ms, "
            f"timer mode={mode.value}"
        )

    @property
    def options(self) -> TimeoutOptions:
        if self._options is None:
            try:
                self._options = TimeoutOptions.model_validate(self._raw_options)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid timeout wrapper options: {describe_errors(e.errors())}"
                ) from None
        return self._options

    def _validate_call(
        self,
        timeout_handler: Any,
        cleanup_handler: Any,
    ) -> TimeoutOptions:
        opts = self.options
        if opts.remaining_time_source is None:
            raise ConfigurationError("remaining_time_source is required")
        if timeout_handler is None or not callable(timeout_handler):
            raise ConfigurationError("Timeout handler function is required")
        # Optional, but must be callable when given.
        if cleanup_handler is not None and not callable(cleanup_handler):
            raise ConfigurationError("User cleanup handler must be a function if provided")
        return opts

    async def __call__(
        self,
        task: Callable[[], Awaitable[T]],
        timeout_handler: Callable[[], Awaitable[Any]],
        cleanup_handler: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> T:
        opts = self._validate_call(timeout_handler, cleanup_handler)
        log = self.logger

        log.info("Starting timeout monitoring process")
        if cleanup_handler is not None:
            log.info("User cleanup handler is provided and will be used if timeout occurs")

        stopwatch = None
        if opts.use_fallback_stopwatch:
            stopwatch = FallbackStopwatch(opts.remaining_time_source)

        checker = DeadlineChecker(
            safety_margin_ms=opts.safety_margin_ms,
            check_interval_ms=opts.check_interval_ms,
            logger=log,
            remaining_time_source=opts.remaining_time_source,
            stopwatch=stopwatch,
        )
        timer = PeriodicTimer(log)
        state = InvocationState.RUNNING

        try:
            work = asyncio.ensure_future(task())
            watch = timer.start(checker.run())

            await asyncio.wait({work, watch}, return_when=asyncio.FIRST_COMPLETED)

            # A trigger on the same wake-up as task completion still wins.
            if watch.done():
                self._abandon(work)
                check_error = watch.exception()
                if check_error is not None:
                    state = InvocationState.CHECK_ERROR
                    raise check_error

                timer.release()
                state = InvocationState.SHUTTING_DOWN
                err = await run_shutdown(
                    timeout_handler,
                    cleanup_handler,
                    cleanup_time_ms=opts.cleanup_time_ms,
                    logger=log,
                    remaining_ms=watch.result(),
                )
                state = err.state
                raise err

            timer.release("Function settled, clearing timeout check interval")
            if work.exception() is not None:
                state = InvocationState.TASK_ERROR
            result = work.result()
            state = InvocationState.COMPLETED
            return result
        finally:
            timer.release("Cleaning up timeout check interval during finally block")
            log.info(f"Invocation finished in state {state.value}")

    def _abandon(self, work: asyncio.Future) -> None:
        """Stop observing the task without interrupting it."""
        log = self.logger

        def _settled(fut: asyncio.Future) -> None:
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                log.warning(f"Abandoned task failed after timeout: {exc}")
            else:
                log.info("Abandoned task completed after timeout")

        work.add_done_callback(_settled)


def create_timeout_wrapper(
    *,
    settings: Optional[Settings] = None,
    **options: Any,
) -> TimeoutWrapper:
    """
    Builds a wrapper from settings (defaults or `load_settings()`) plus
    keyword overrides such as remaining_time_source and log_sink.
    """
    merged: Dict[str, Any] = settings.as_options() if settings is not None else {}
    merged.update(options)
    return TimeoutWrapper(merged)
