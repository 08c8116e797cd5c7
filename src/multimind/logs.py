"""
multimind: Logging helpers.

Adds a SUCCESS level between INFO and WARNING and a handler that forwards
records to a terminal-like sink (anything with ``writeln``). Without a
terminal attached, records go through the normal logging configuration.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_RESET = "\x1b[0m"
_COLORS = {
    logging.DEBUG: "\x1b[90m",  # Grey
    logging.INFO: "\x1b[36m",  # Cyan
    SUCCESS: "\x1b[32m",  # Green
    logging.WARNING: "\x1b[33m",  # Yellow
    logging.ERROR: "\x1b[31m",  # Red
}

REDACTED_HEADERS = frozenset({"authorization", "x-api-key", "x-goog-api-key"})


class Terminal(Protocol):
    """Line-oriented log sink, e.g. an on-screen console widget."""

    def writeln(self, text: str) -> None: ...


class TerminalFormatter(logging.Formatter):
    """``[ISO timestamp] message`` wrapped in an ANSI colour for the level."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        color = _COLORS.get(record.levelno, _COLORS[logging.ERROR])
        return f"{color}[{timestamp}] {record.getMessage()}{_RESET}"


class TerminalHandler(logging.Handler):
    """Write each log record as one line to a ``Terminal``."""

    def __init__(self, terminal: Terminal, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.terminal = terminal
        self.setFormatter(TerminalFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.terminal.writeln(self.format(record))
        except Exception:
            self.handleError(record)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of ``headers`` safe to put in a log line."""
    return {
        k: ("[REDACTED]" if k.lower() in REDACTED_HEADERS else v) for k, v in headers.items()
    }
