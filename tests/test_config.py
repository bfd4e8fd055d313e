from __future__ import annotations

import pytest
from pydantic import ValidationError

from timeout_wrapper.config import Settings, load_settings
from timeout_wrapper.orchestrator import create_timeout_wrapper
from timeout_wrapper.schemas import TimeoutOptions, TimerMode

ENV_VARS = (
    "TIMEOUT_WRAPPER_SAFETY_MARGIN_MS",
    "TIMEOUT_WRAPPER_CHECK_INTERVAL_MS",
    "TIMEOUT_WRAPPER_CLEANUP_TIME_MS",
    "TIMEOUT_WRAPPER_FALLBACK_TIMER",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings()
    assert s == Settings()
    assert s.safety_margin_ms == 5000.0
    assert s.check_interval_ms == 1000.0
    assert s.cleanup_time_ms == 3000.0
    assert s.use_fallback_stopwatch is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TIMEOUT_WRAPPER_SAFETY_MARGIN_MS", "2000")
    monkeypatch.setenv("TIMEOUT_WRAPPER_CHECK_INTERVAL_MS", "250")
    monkeypatch.setenv("TIMEOUT_WRAPPER_CLEANUP_TIME_MS", " 1500 ")
    monkeypatch.setenv("TIMEOUT_WRAPPER_FALLBACK_TIMER", "Yes")
    s = load_settings()
    assert s == Settings(
        safety_margin_ms=2000.0,
        check_interval_ms=250.0,
        cleanup_time_ms=1500.0,
        use_fallback_stopwatch=True,
    )


def test_unparseable_env_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("TIMEOUT_WRAPPER_SAFETY_MARGIN_MS", "five seconds")
    monkeypatch.setenv("TIMEOUT_WRAPPER_FALLBACK_TIMER", "maybe")
    s = load_settings()
    assert s.safety_margin_ms == 5000.0
    assert s.use_fallback_stopwatch is False


def test_options_model_defaults():
    opts = TimeoutOptions(remaining_time_source=lambda: 1)
    assert opts.safety_margin_ms == 5000.0
    assert opts.check_interval_ms == 1000.0
    assert opts.cleanup_time_ms == 3000.0
    assert opts.use_fallback_stopwatch is False


def test_init_line_reports_context_mode_by_default():
    lines = []
    create_timeout_wrapper(log_sink=lines.append)
    assert lines[0].endswith(f"timer mode={TimerMode.CONTEXT.value}")


@pytest.mark.parametrize(
    "field, value",
    [("safety_margin_ms", 0), ("check_interval_ms", -1), ("cleanup_time_ms", "soon")],
)
def test_options_model_rejects_non_positive_or_non_numeric(field, value):
    with pytest.raises(ValidationError):
        TimeoutOptions(**{field: value})


def test_keyword_options_take_precedence_over_settings():
    lines = []
    wrapper = create_timeout_wrapper(
        settings=Settings(safety_margin_ms=2000, use_fallback_stopwatch=True),
        safety_margin_ms=750,
        remaining_time_source=lambda: 60_000,
        log_sink=lines.append,
    )
    assert wrapper.options.safety_margin_ms == 750
    assert wrapper.options.use_fallback_stopwatch is True
    assert len(lines) == 1
    assert "safety margin=750ms" in lines[0]
    assert "timer mode=fallback" in lines[0]
