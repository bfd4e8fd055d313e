import asyncio
import time
from typing import Any, Awaitable, Callable, Optional


class Timer:
    """A simple timer context manager (milliseconds, monotonic clock)."""
    def __init__(self, name: str = "Task"):
        self.name = name
        self.start = 0.0
        self.end = 0.0
        self.duration_ms = 0.0

    def __enter__(self) -> "Timer":
        self.start = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end = time.monotonic()
        self.duration_ms = (self.end - self.start) * 1000.0


class FallbackStopwatch:
    """
    Remaining-time estimate derived from elapsed time since a baseline.

    The source is read exactly once, when the stopwatch is created.
    """
    def __init__(self, remaining_time_source: Callable[[], float]):
        self.start = time.monotonic()
        self.initial_remaining_ms = remaining_time_source()

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)

    def remaining_ms(self) -> float:
        return self.initial_remaining_ms - self.elapsed_ms()


async def timebox_async(
    fn: Callable[[], Awaitable[Any]],
    limit_ms: float,
    *,
    name: Optional[str] = None,
    on_late: Optional[Callable[[asyncio.Future], None]] = None,
) -> Any:
    """
    Awaits fn() for at most limit_ms, then raises TimeoutError.

    On overrun the work is asked to cancel but never awaited again; a
    late settlement is passed to on_late (or just collected).
    """
    work = asyncio.ensure_future(fn())
    try:
        done, _ = await asyncio.wait({work}, timeout=limit_ms / 1000.0)
    except asyncio.CancelledError:
        work.cancel()
        raise

    if work in done:
        return work.result()

    work.add_done_callback(on_late or _collect)
    work.cancel()
    label = name or "Timebox"
    raise TimeoutError(f"{label} exceeded allocated time of {limit_ms}ms")


def _collect(fut: asyncio.Future) -> None:
    if not fut.cancelled():
        fut.exception()
