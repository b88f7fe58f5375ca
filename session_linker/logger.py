"""
Logging setup for the session linker.

Every link attempt is logged with the guest session id and user id so one
migration can be followed across trigger points, tabs and the merge service.
Ids are shortened to 8 characters in message prefixes and passed in full as
record attributes for the JSON formatter.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional, TextIO


# Verbose link tracing, switched on with DEBUG_MODE=true
_DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"

CONTEXT_FIELDS = ("session_id", "user_id", "origin")

# Libraries whose request-level INFO logs drown out link attempts
NOISY_LOGGERS = ("httpx", "httpcore", "pymongo")


def set_global_debug_mode(enabled: bool) -> None:
    global _DEBUG_MODE
    _DEBUG_MODE = enabled


def is_debug_mode() -> bool:
    return _DEBUG_MODE


class LinkLogger:
    """
    Logger bound to one (session, user) pair.

    Messages get a `[session:xxxxxxxx] [user:xxxxxxxx] [origin]` prefix, and
    the full ids are attached to each record as `extra` fields.
    """

    def __init__(
        self,
        name: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        origin: Optional[str] = None,
        debug_mode: Optional[bool] = None,
    ):
        self.logger = logging.getLogger(name)
        self.session_id = session_id
        self.user_id = user_id
        self.origin = origin

        if debug_mode if debug_mode is not None else is_debug_mode():
            self.logger.setLevel(logging.DEBUG)

    @property
    def level(self) -> int:
        return self.logger.level

    @property
    def context(self) -> Dict[str, str]:
        values = {name: getattr(self, name) for name in CONTEXT_FIELDS}
        return {name: value for name, value in values.items() if value}

    def _prefix(self) -> str:
        parts = []
        if self.session_id:
            parts.append(f"[session:{self.session_id[:8]}]")
        if self.user_id:
            parts.append(f"[user:{self.user_id[:8]}]")
        if self.origin:
            parts.append(f"[{self.origin}]")
        return " ".join(parts)

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        prefix = self._prefix()
        extra = {**self.context, **kwargs.pop("extra", {})}
        self.logger.log(level, f"{prefix} {message}" if prefix else message, extra=extra, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log at ERROR with the active exception's traceback."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including any correlation fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(level: str = "INFO", format: str = "simple", stream: Optional[TextIO] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        format: "simple" for development, "json" for log aggregation
        stream: Output stream (defaults to stdout)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    if format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(
    name: str,
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    origin: Optional[str] = None,
    debug_mode: Optional[bool] = None,
) -> LinkLogger:
    """
    Get a logger carrying link correlation context.

    Args:
        name: Logger name (usually __name__)
        session_id: Guest session id
        user_id: Authenticated user id
        origin: Trigger that started the attempt (signup, auth_event, ...)
        debug_mode: Force DEBUG level on. None uses DEBUG_MODE.
    """
    return LinkLogger(name, session_id, user_id, origin, debug_mode)
