# src/timeout_wrapper/schemas.py
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, confloat


# -----------------------------
# Enums
# -----------------------------
class InvocationState(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    TASK_ERROR = "TASK_ERROR"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    TIMED_OUT = "TIMED_OUT"
    TIMED_OUT_WITH_HANDLER_ERROR = "TIMED_OUT_WITH_HANDLER_ERROR"
    CHECK_ERROR = "CHECK_ERROR"


class TimerMode(str, Enum):
    CONTEXT = "context"
    FALLBACK = "fallback"


# -----------------------------
# Shared constraints
# -----------------------------
PositiveMs = confloat(gt=0)


# -----------------------------
# Wrapper options
# -----------------------------
class TimeoutOptions(BaseModel):
    """
    Effective options of a timeout wrapper.

    Callables are checked for callability only; their return values are
    not validated here.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    safety_margin_ms: PositiveMs = Field(
        5000.0, description="Remaining time at or below which shutdown starts."
    )
    check_interval_ms: PositiveMs = Field(1000.0, description="Cadence of deadline checks.")
    cleanup_time_ms: PositiveMs = Field(
        3000.0, description="Budget granted to the user cleanup handler."
    )
    remaining_time_source: Optional[Callable[[], float]] = Field(
        None, description="Milliseconds until forced termination, as reported by the host."
    )
    use_fallback_stopwatch: bool = Field(
        False, description="Derive remaining time from elapsed time after one initial read."
    )
    log_sink: Optional[Callable[[str], Any]] = Field(
        None, description="Receives single plain-text diagnostic lines."
    )


def describe_errors(errors: list[Dict[str, Any]]) -> str:
    """Flatten pydantic error dicts into one readable line."""
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "options"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)
