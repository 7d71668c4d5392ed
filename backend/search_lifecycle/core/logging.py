"""JSON logging for lifecycle runs and events."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

CONTEXT_PREFIX = "ctx_"
_DEFAULT_LEVEL = os.environ.get("SLC_LOG_LEVEL", "INFO")
_DEFAULT_FORMAT = os.environ.get("SLC_LOG_FORMAT", "json")
# Per-request chatter from the HTTP stack drowns out batch-level events.
_QUIET_LOGGERS = ("urllib3", "requests")


def context_extra(**fields: Any) -> dict[str, Any]:
    """Build a ``logging`` ``extra`` mapping; ``None`` values are dropped."""
    return {f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items() if value is not None}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``ctx_*`` record attributes are nested under ``ctx``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_ms": int(record.created * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        context = {
            key[len(CONTEXT_PREFIX):]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            payload["ctx"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=repr).decode("utf-8")


def configure_logging(level: str | int = _DEFAULT_LEVEL, fmt: str = _DEFAULT_FORMAT) -> None:
    """Install a single stdout handler on the root logger.

    ``fmt`` is ``json`` (default) or ``text``.
    """
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    if fmt == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "search_lifecycle") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["CONTEXT_PREFIX", "JsonFormatter", "configure_logging", "context_extra", "get_logger"]
