"""
Structured logging for the refresh engine.

Every line logged inside a league refresh cycle carries the cycle's
``refresh_id`` and the ``league_id`` being refreshed. Both live in context
variables; each asyncio task works on its own copy, so concurrent cycles on
the event loop never tag each other's lines.

Production output is one JSON object per line; development gets a colored
single-line format.
"""
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

refresh_id_var: ContextVar[str] = ContextVar("refresh_id", default="")
league_id_var: ContextVar[str] = ContextVar("league_id", default="")

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Fields: timestamp, level, logger, message, refresh_id, league_id, plus
    ``exception`` when the record has exc_info and ``extra`` for any
    caller-supplied fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "refresh_id": refresh_id_var.get(),
            "league_id": league_id_var.get(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable console output for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = f"{color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"

        tags = [
            f"{name}={value}"
            for name, value in (("league", league_id_var.get()), ("refresh_id", refresh_id_var.get()))
            if value
        ]
        if tags:
            line += " | " + " ".join(tags)

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: Optional[logging.Handler] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name
        json_output: JSON lines when True, colored console lines otherwise
        handler: Handler to install (defaults to a stdout StreamHandler)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

    handler.setFormatter(JSONFormatter() if json_output else ColoredFormatter())
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


def set_refresh_id(refresh_id: str) -> Any:
    """Set the refresh ID in the context; returns the token for ``clear_refresh_id``."""
    return refresh_id_var.set(refresh_id)


def get_refresh_id() -> str:
    """Get the current refresh ID from the context (empty string if not set)."""
    return refresh_id_var.get()


def clear_refresh_id(token: Any) -> None:
    refresh_id_var.reset(token)


@contextmanager
def refresh_context(league_id: str, refresh_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag every line logged in the block with ``league_id`` and a cycle id.

    Usage:
        with refresh_context(league_id) as cycle_id:
            ...
    """
    cycle_id = refresh_id or uuid.uuid4().hex[:12]
    refresh_token = refresh_id_var.set(cycle_id)
    league_token = league_id_var.set(league_id)
    try:
        yield cycle_id
    finally:
        league_id_var.reset(league_token)
        refresh_id_var.reset(refresh_token)
