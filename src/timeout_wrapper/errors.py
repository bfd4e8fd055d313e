from __future__ import annotations

from typing import Any, Optional

from timeout_wrapper.schemas import InvocationState


class ConfigurationError(ValueError):
    """Invalid wrapper options or handlers; raised before monitoring starts."""


class DeadlineTimeoutError(Exception):
    """
    Raised when the safety margin was breached and the shutdown sequence ran.

    `is_timeout` is always True so callers can tell a deadline-driven
    termination apart from an application error. `handler_error` holds the
    timeout handler's own exception when it failed.
    """

    is_timeout = True

    def __init__(
        self,
        message: str,
        *,
        handler_error: Optional[BaseException] = None,
        handler_result: Any = None,
        remaining_ms: Optional[float] = None,
    ):
        super().__init__(message)
        self.handler_error = handler_error
        self.handler_result = handler_result
        self.remaining_ms = remaining_ms

    @property
    def state(self) -> InvocationState:
        if self.handler_error is not None:
            return InvocationState.TIMED_OUT_WITH_HANDLER_ERROR
        return InvocationState.TIMED_OUT
