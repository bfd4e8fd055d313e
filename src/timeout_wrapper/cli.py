from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from dotenv import load_dotenv

from timeout_wrapper.config import load_settings
from timeout_wrapper.errors import ConfigurationError, DeadlineTimeoutError
from timeout_wrapper.orchestrator import create_timeout_wrapper
from timeout_wrapper.utils.logging import Logger
from timeout_wrapper.utils.timebox import Timer

TIMEOUT_EXIT_CODE = 124
HANDLER_FAILED_EXIT_CODE = 125
USAGE_EXIT_CODE = 2
LAUNCH_FAILED_EXIT_CODE = 127


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="timeout-wrapper",
        description="Run a command and shut it down gracefully before its deadline.",
    )
    p.add_argument("--budget-ms", type=float, required=True, help="Total time the command may use")
    p.add_argument("--safety-margin-ms", type=float)
    p.add_argument("--check-interval-ms", type=float)
    p.add_argument("--cleanup-time-ms", type=float)
    p.add_argument("--verbose", action="store_true", help="Print wrapper diagnostics to stderr")
    p.add_argument("--log", help="Path to save execution log")
    p.add_argument("command", nargs=argparse.REMAINDER, help="Command to run (after --)")
    return p


async def run_command(command: List[str], budget_ms: float, log: Logger, **overrides) -> int:
    settings = load_settings()
    options = {k: v for k, v in overrides.items() if v is not None}
    wrapper = create_timeout_wrapper(
        settings=settings,
        remaining_time_source=lambda: budget_ms,
        use_fallback_stopwatch=True,
        log_sink=log,
        **options,
    )
    # Fail on bad options before anything is spawned.
    opts = wrapper.options
    log.info(f"Budget {budget_ms}ms, shutdown at {opts.safety_margin_ms}ms remaining")

    proc = await asyncio.create_subprocess_exec(*command)
    log.info(f"Started {command[0]} (pid {proc.pid})")

    async def terminate():
        if proc.returncode is None:
            log.warning(f"Sending SIGTERM to pid {proc.pid}")
            proc.terminate()
            await proc.wait()

    async def on_timeout():
        if proc.returncode is None:
            log.error(f"Killing pid {proc.pid}")
            proc.kill()
            await proc.wait()
        return proc.returncode

    try:
        return await wrapper(proc.wait, on_timeout, terminate)
    except DeadlineTimeoutError as e:
        log.error(str(e))
        if e.handler_error is not None:
            return HANDLER_FAILED_EXIT_CODE
        return TIMEOUT_EXIT_CODE


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    args = build_parser().parse_args(argv)
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        sys.stderr.write("timeout-wrapper: a command is required\n")
        return USAGE_EXIT_CODE

    log = Logger(verbose=args.verbose, log_file=args.log)
    try:
        with Timer(command[0]) as t:
            code = asyncio.run(
                run_command(
                    command,
                    args.budget_ms,
                    log,
                    safety_margin_ms=args.safety_margin_ms,
                    check_interval_ms=args.check_interval_ms,
                    cleanup_time_ms=args.cleanup_time_ms,
                )
            )
        log.info(f"{t.name} finished with exit code {code} after {t.duration_ms:.0f}ms")
        return code
    except ConfigurationError as e:
        sys.stderr.write(f"timeout-wrapper: {e}\n")
        return USAGE_EXIT_CODE
    except FileNotFoundError as e:
        sys.stderr.write(f"timeout-wrapper: failed to launch command: {e}\n")
        return LAUNCH_FAILED_EXIT_CODE
    finally:
        log.close()


if __name__ == "__main__":
    raise SystemExit(main())
