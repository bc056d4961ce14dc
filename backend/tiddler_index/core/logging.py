"""Logging utilities for the tiddler index."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

_DEFAULT_LEVEL = os.environ.get("TIDX_LOG_LEVEL", "INFO")
_DEFAULT_FORMAT = os.environ.get("TIDX_LOG_FORMAT", "json")
_CONTEXT_PREFIX = "ctx_"

# httpx logs every request at INFO; a sync cycle issues one per document.
_NOISY_LOGGERS = ("httpx", "httpcore")


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra`` mapping whose fields land under ``context`` in JSON output."""
    return {f"{_CONTEXT_PREFIX}{key}": value for key, value in fields.items()}


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``log_context`` fields are grouped under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        context = {
            key[len(_CONTEXT_PREFIX) :]: value
            for key, value in record.__dict__.items()
            if key.startswith(_CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool | None = None) -> None:
    """Install a single stdout handler on the root logger."""
    if use_json is None:
        use_json = _DEFAULT_FORMAT.lower() != "text"
    logging.captureWarnings(True)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter() if use_json else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "tiddler_index") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "log_context"]
