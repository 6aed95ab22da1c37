"""Colored console output shared by every md2pdf component."""

import sys
import threading

from colorama import init, Fore, Style

# Initialize colorama for cross-platform colored output
init(autoreset=True)


class Console:
    """Prints ``[LEVEL]`` prefixed, colored messages.

    Info and success lines go to stdout, warnings and errors to stderr so
    that piping the output of a successful run stays clean.
    """

    def __init__(self, debug: bool = False, stdout=None, stderr=None):
        self.debug_enabled = debug
        self._stdout = stdout
        self._stderr = stderr
        self._lock = threading.Lock()

    def _write(self, stream, color: str, label: str, message: str) -> None:
        # Resolved lazily so pytest's capsys sees the output
        target = stream or (sys.stderr if label in ("WARNING", "ERROR") else sys.stdout)
        with self._lock:
            print(f"{color}[{label}]{Style.RESET_ALL} {message}", file=target)

    def debug(self, message: str) -> None:
        """Log debug message (only if debug mode is enabled)."""
        if self.debug_enabled:
            self._write(self._stdout, Fore.CYAN, "DEBUG", message)

    def info(self, message: str) -> None:
        self._write(self._stdout, Fore.GREEN, "INFO", message)

    def warning(self, message: str) -> None:
        self._write(self._stderr, Fore.YELLOW, "WARNING", message)

    def error(self, message: str) -> None:
        self._write(self._stderr, Fore.RED, "ERROR", message)

    def success(self, message: str) -> None:
        self._write(self._stdout, Fore.GREEN, "OK", message)
