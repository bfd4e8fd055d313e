import sys
import re
from typing import Callable, Optional

# ANSI colors
RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"

# Regex to strip ANSI codes for file logging and plain sinks
ANSI_ESCAPE = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')

LogSink = Callable[[str], None]


class Logger:
    """
    Line-oriented logger for the wrapper.

    Lines go to a caller-provided sink (plain text) when one is given,
    otherwise to stderr with colors when verbose. A log file, if set,
    always receives the plain text.
    """

    def __init__(
        self,
        verbose: bool = True,
        log_file: Optional[str] = None,
        sink: Optional[LogSink] = None,
    ):
        self.verbose = verbose
        self.log_file = log_file
        self.sink = sink
        self._file_handle = None

        if self.log_file:
            try:
                self._file_handle = open(self.log_file, "w", encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Could not open log file {self.log_file}: {e}\n")

    def _strip_ansi(self, text: str) -> str:
        return ANSI_ESCAPE.sub('', text)

    def _write(self, text: str):
        clean_text = self._strip_ansi(text)

        if self.sink is not None:
            self.sink(clean_text)
        elif self.verbose:
            try:
                sys.stderr.write(text + "\n")
            except (OSError, ValueError):
                # stderr closed or detached; console output is best-effort
                pass

        if self._file_handle:
            self._file_handle.write(clean_text + "\n")
            self._file_handle.flush()

    def __call__(self, line: str):
        self.info(line)

    def close(self):
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def info(self, msg: str):
        self._write(msg)

    def success(self, msg: str):
        self._write(f"{GREEN}{msg}{RESET}")

    def warning(self, msg: str):
        self._write(f"{YELLOW}{msg}{RESET}")

    def error(self, msg: str):
        self._write(f"{RED}{msg}{RESET}")

    def section(self, title: str):
        self._write(f"{BOLD}>> {title}{RESET}")

    def check(self, remaining_ms: float, safety_margin_ms: float):
        self._write(
            f"{CYAN}Timeout check:{RESET} {remaining_ms}ms remaining "
            f"(safety margin: {safety_margin_ms}ms)"
        )


def as_logger(sink: Optional[LogSink]) -> Logger:
    """Wrap a plain line sink, or fall back to the console logger."""
    if isinstance(sink, Logger):
        return sink
    # Non-callable sinks are reported when options are validated.
    return Logger(verbose=True, sink=sink if callable(sink) else None)
