from __future__ import annotations

import asyncio
from typing import Callable, Optional, Tuple

from timeout_wrapper.utils.logging import Logger
from timeout_wrapper.utils.timebox import FallbackStopwatch

# Checks are logged unconditionally inside this multiple of the safety margin.
DANGER_ZONE_FACTOR = 3
# Outside the danger zone only every Nth check is logged.
LOG_EVERY_N_CHECKS = 10

CHECKER_TASK_NAME = "timeout-wrapper-checker"


def check_step(
    remaining_ms: float,
    counter: int,
    safety_margin_ms: float,
    logger: Logger,
) -> Tuple[int, bool]:
    """
    One deadline check. Returns the next counter value and whether the
    safety margin has been breached.
    """
    in_danger_zone = remaining_ms <= safety_margin_ms * DANGER_ZONE_FACTOR
    counter = (counter + 1) % LOG_EVERY_N_CHECKS

    if in_danger_zone or counter == 0:
        logger.check(remaining_ms, safety_margin_ms)

    return counter, remaining_ms <= safety_margin_ms


class PeriodicTimer:
    """
    Ownership token for the checker's background task.

    Releasing is idempotent: releasing a never-started or already-released
    timer does nothing.
    """

    def __init__(self, logger: Logger):
        self.logger = logger
        self._task: Optional[asyncio.Task] = None
        self.released = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done() and not self.released

    def start(self, coro) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(coro, name=CHECKER_TASK_NAME)
        return self._task

    def release(self, reason: str = "Clearing timeout check interval") -> bool:
        if self.released:
            return False
        self.released = True
        if self._task is not None and not self._task.done():
            self.logger.info(reason)
            self._task.cancel()
            return True
        return False


class DeadlineChecker:
    """Polls remaining time until it drops to the safety margin."""

    def __init__(
        self,
        *,
        safety_margin_ms: float,
        check_interval_ms: float,
        logger: Logger,
        remaining_time_source: Optional[Callable[[], float]] = None,
        stopwatch: Optional[FallbackStopwatch] = None,
    ):
        if remaining_time_source is None and stopwatch is None:
            raise ValueError("DeadlineChecker needs a remaining-time source or a stopwatch")
        self.safety_margin_ms = safety_margin_ms
        self.check_interval_ms = check_interval_ms
        self.logger = logger
        self.remaining_time_source = remaining_time_source
        self.stopwatch = stopwatch
        self.checks = 0

    def remaining_ms(self) -> float:
        if self.stopwatch is not None:
            return self.stopwatch.remaining_ms()
        return self.remaining_time_source()

    async def run(self) -> float:
        """
        Immediate check, then one per interval. Returns the remaining time
        that breached the margin; errors from the source propagate as-is.
        """
        counter = 0
        self.logger.info(f"Setting up timeout check interval every {self.check_interval_ms}ms")
        self.logger.info("Performing initial timeout check")

        while True:
            try:
                remaining = self.remaining_ms()
                counter, triggered = check_step(
                    remaining, counter, self.safety_margin_ms, self.logger
                )
            except Exception as e:
                self.logger.error(f"Error in timeout check: {e}")
                raise
            self.checks += 1

            if triggered:
                self.logger.error(
                    f"TIMEOUT IMMINENT! Only {remaining}ms remaining, which is below "
                    f"safety margin of {self.safety_margin_ms}ms"
                )
                return remaining

            await asyncio.sleep(self.check_interval_ms / 1000.0)
