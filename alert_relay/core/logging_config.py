"""
Structured logging configuration.

Provides:
    • JSON logs in production, coloured console logs elsewhere
    • Log scopes: fields bound to everything logged inside a block
        - HTTP requests   → request_id, client_ip, endpoint, method
        - poll cycles     → cycle, kind
    • Promotion of structured ``extra`` fields into the JSON output

Scopes live in a ContextVar, so tasks started by asyncio.gather inside a
poll cycle inherit the cycle id; a transition can be followed from the
fetch to each recipient's delivery by grepping for it.

Usage:
    from alert_relay.core.logging_config import log_scope, setup_logging

    setup_logging()
    with log_scope(cycle="CYC-1A2B3C", kind="subscribers"):
        logger.info("ALERT sent", extra={"recipient_id": "100"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from alert_relay.core.config import settings

_scope: ContextVar[Dict[str, Any]] = ContextVar("log_scope", default={})

# Extra attributes promoted into structured output
STRUCTURED_FIELDS = (
    "location_uid", "recipient_id", "transition", "outcome",
    "attempt", "delay_ms", "cycle", "duration_ms", "status_code", "endpoint",
)

# Shown inline by the console formatter
_INLINE_FIELDS = ("recipient_id", "location_uid", "outcome")


@contextmanager
def log_scope(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Bind ``fields`` (merged over any enclosing scope) for the block."""
    merged = {**_scope.get(), **fields}
    token = _scope.set(merged)
    try:
        yield merged
    finally:
        _scope.reset(token)


def current_scope() -> Dict[str, Any]:
    return _scope.get()


def _structured_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: getattr(record, k) for k in STRUCTURED_FIELDS if hasattr(record, k)}


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": f"{record.module}:{record.lineno}",
        }

        scope = current_scope()
        if scope:
            entry["scope"] = scope
        entry.update(_structured_extras(record))

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


# ── Pretty Formatter (Development) ──

class PrettyFormatter(logging.Formatter):
    """Coloured human-readable format for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    DIM = "\033[2m"
    RESET = "\033[0m"

    @staticmethod
    def _scope_tag(scope: Dict[str, Any]) -> str:
        if scope.get("cycle"):
            return f" [{scope.get('kind', 'cycle')}:{scope['cycle'][-6:]}]"
        if scope.get("request_id"):
            return f" [req:{scope['request_id'][:8]}]"
        return ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{self._scope_tag(current_scope())} {record.name}: {record.getMessage()}"
        )

        inline = [f"{k}={getattr(record, k)}" for k in _INLINE_FIELDS if hasattr(record, k)]
        if inline:
            line += f" {self.DIM}({', '.join(inline)}){self.RESET}"

        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)

        return line


# ── Setup ──

def setup_logging() -> None:
    """Install one stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())
    root.addHandler(handler)

    # Per-request noise from the HTTP stack and the SQLite driver
    for name in ("uvicorn.access", "httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
