from __future__ import annotations

import asyncio

from timeout_wrapper.errors import DeadlineTimeoutError
from timeout_wrapper.schemas import InvocationState
from timeout_wrapper.shutdown import run_cleanup, run_shutdown
from timeout_wrapper.utils.logging import Logger


def test_shutdown_without_cleanup_returns_clean_timeout():
    lines = []

    async def on_timeout():
        return {"statusCode": 408}

    err = asyncio.run(
        run_shutdown(on_timeout, None, cleanup_time_ms=100, logger=Logger(sink=lines.append))
    )
    assert isinstance(err, DeadlineTimeoutError)
    assert err.handler_result == {"statusCode": 408}
    assert err.state is InvocationState.TIMED_OUT
    assert "Running system timeout handler..." in lines
    assert "System timeout handler completed successfully" in lines
    assert not any("cleanup" in line for line in lines)


def test_shutdown_orders_cleanup_before_handler():
    lines = []
    events = []

    async def cleanup():
        await asyncio.sleep(0.01)
        events.append("cleanup")

    async def on_timeout():
        events.append("timeout")

    asyncio.run(
        run_shutdown(on_timeout, cleanup, cleanup_time_ms=500, logger=Logger(sink=lines.append))
    )
    assert events == ["cleanup", "timeout"]
    assert lines.index("User cleanup handler completed successfully") < lines.index(
        "Running system timeout handler..."
    )


def test_handler_error_is_captured_not_raised():
    async def on_timeout():
        raise KeyError("queue")

    err = asyncio.run(
        run_shutdown(on_timeout, None, cleanup_time_ms=100, logger=Logger(sink=lambda line: None))
    )
    assert isinstance(err.handler_error, KeyError)
    assert err.state is InvocationState.TIMED_OUT_WITH_HANDLER_ERROR
    assert err.is_timeout


def test_cleanup_returning_non_awaitable_is_swallowed():
    lines = []

    def sync_cleanup():
        return None

    asyncio.run(run_cleanup(sync_cleanup, 100, Logger(sink=lines.append)))
    assert any(line.startswith("Warning: User cleanup handler failed") for line in lines)


def test_overrun_cleanup_is_not_awaited_after_its_budget():
    lines = []
    events = []

    async def stubborn_cleanup():
        try:
            await asyncio.sleep(0.3)
        except asyncio.CancelledError:
            await asyncio.sleep(0.3)
        events.append("cleanup")

    async def main():
        await run_cleanup(stubborn_cleanup, 20, Logger(sink=lines.append))
        events.append("returned")
        await asyncio.sleep(0.4)

    asyncio.run(main())
    assert events == ["returned", "cleanup"]
    assert lines[-1] == "Abandoned cleanup handler finished after its budget"
