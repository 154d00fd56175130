"""Stderr logging for the client layer.

stdout belongs to the MCP stdio transport, and FastMCP swallows records sent
through the ``logging`` module from inside tool calls, so client components
print one tagged line per event to stderr instead.
"""

import sys
from datetime import datetime


def log_event(message: str, component: str = "CLIENT") -> None:
    """Print ``[timestamp] [B24] [COMPONENT] message`` to stderr."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] [B24] [{component}] {message}", file=sys.stderr, flush=True)


class ClientLogger:
    """Per-component logger over ``log_event``; levels other than info are prefixed."""

    def __init__(self, component: str = "CLIENT") -> None:
        self.component = component

    def _emit(self, level: str, message: str) -> None:
        log_event(f"{level}: {message}" if level else message, self.component)

    def info(self, message: str) -> None:
        self._emit("", message)

    def debug(self, message: str) -> None:
        self._emit("DEBUG", message)

    def warning(self, message: str) -> None:
        self._emit("WARNING", message)

    def error(self, message: str) -> None:
        self._emit("ERROR", message)

    def exception(self, message: str, error: BaseException) -> None:
        """Error line naming the exception type, e.g. ``ERROR: ... (BatchChunkFailure: ...)``."""
        self._emit("ERROR", f"{message} ({type(error).__name__}: {error})")
