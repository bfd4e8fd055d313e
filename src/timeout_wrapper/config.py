from __future__ import annotations

from dataclasses import asdict, dataclass
import os
from typing import Any, Dict

TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class Settings:
    # Shutdown starts once remaining time drops to this value.
    safety_margin_ms: float = 5000.0

    # Deadline polling cadence.
    check_interval_ms: float = 1000.0

    # Budget for the user cleanup handler, inside the safety margin.
    cleanup_time_ms: float = 3000.0

    # Read the remaining time once and count down locally.
    use_fallback_stopwatch: bool = False

    def as_options(self) -> Dict[str, Any]:
        return asdict(self)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    defaults = Settings()

    margin = _env_float("TIMEOUT_WRAPPER_SAFETY_MARGIN_MS", defaults.safety_margin_ms)
    interval = _env_float("TIMEOUT_WRAPPER_CHECK_INTERVAL_MS", defaults.check_interval_ms)
    cleanup = _env_float("TIMEOUT_WRAPPER_CLEANUP_TIME_MS", defaults.cleanup_time_ms)

    fallback_s = os.getenv("TIMEOUT_WRAPPER_FALLBACK_TIMER", "").strip().lower()
    fallback = fallback_s in TRUTHY if fallback_s else defaults.use_fallback_stopwatch

    return Settings(
        safety_margin_ms=margin,
        check_interval_ms=interval,
        cleanup_time_ms=cleanup,
        use_fallback_stopwatch=fallback,
    )
