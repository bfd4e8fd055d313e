from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from timeout_wrapper.errors import DeadlineTimeoutError
from timeout_wrapper.utils.logging import Logger
from timeout_wrapper.utils.timebox import timebox_async

Handler = Callable[[], Awaitable[Any]]


async def run_cleanup(
    cleanup_handler: Optional[Handler],
    cleanup_time_ms: float,
    logger: Logger,
) -> None:
    """Best-effort cleanup. Overruns and failures are logged, never raised."""
    if cleanup_handler is None:
        return

    def _late(fut) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.warning(f"Abandoned cleanup handler failed: {exc}")
        else:
            logger.info("Abandoned cleanup handler finished after its budget")

    logger.info("Timeout imminent - running user cleanup handler...")
    try:
        await timebox_async(
            cleanup_handler, cleanup_time_ms, name="User cleanup handler", on_late=_late
        )
    except Exception as e:
        logger.warning(f"Warning: User cleanup handler failed: {e}")
        return
    logger.success("User cleanup handler completed successfully")


async def run_timeout_handler(
    timeout_handler: Handler,
    logger: Logger,
    *,
    remaining_ms: Optional[float] = None,
) -> DeadlineTimeoutError:
    """Runs the timeout handler and maps its outcome to the final error."""
    logger.info("Running system timeout handler...")
    try:
        result = await timeout_handler()
    except Exception as e:
        logger.error(f"System timeout handler failed: {e}")
        err = DeadlineTimeoutError(
            f"Timeout handler failed: {e}",
            handler_error=e,
            remaining_ms=remaining_ms,
        )
        err.__cause__ = e
        return err

    logger.success("System timeout handler completed successfully")
    return DeadlineTimeoutError(
        "Function timeout detected",
        handler_result=result,
        remaining_ms=remaining_ms,
    )


async def run_shutdown(
    timeout_handler: Handler,
    cleanup_handler: Optional[Handler],
    *,
    cleanup_time_ms: float,
    logger: Logger,
    remaining_ms: Optional[float] = None,
) -> DeadlineTimeoutError:
    """
    Cleanup (bounded, swallowed) strictly before the timeout handler.

    Always produces a DeadlineTimeoutError; the caller raises it.
    """
    logger.section("Shutdown sequence")
    await run_cleanup(cleanup_handler, cleanup_time_ms, logger)
    return await run_timeout_handler(timeout_handler, logger, remaining_ms=remaining_ms)
