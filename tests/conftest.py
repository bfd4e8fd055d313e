from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List

import pytest

from timeout_wrapper.checker import CHECKER_TASK_NAME
from timeout_wrapper.orchestrator import TimeoutWrapper, create_timeout_wrapper


@pytest.fixture
def log_lines() -> List[str]:
    return []


@pytest.fixture
def make_wrapper(log_lines: List[str]) -> Callable[..., TimeoutWrapper]:
    def _make(**options: Any) -> TimeoutWrapper:
        options.setdefault("log_sink", log_lines.append)
        return create_timeout_wrapper(**options)

    return _make


@pytest.fixture
def never() -> Callable[..., Awaitable[None]]:
    """A task that never settles on its own."""
    async def _never(*args: Any) -> None:
        await asyncio.Event().wait()

    return _never


@pytest.fixture
def settle() -> Callable[[], Awaitable[None]]:
    """Lets cancelled tasks process their cancellation."""
    async def _settle() -> None:
        for _ in range(3):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def live_checkers() -> Callable[[], list]:
    def _live() -> list:
        return [
            t for t in asyncio.all_tasks()
            if t.get_name() == CHECKER_TASK_NAME and not t.done()
        ]

    return _live
