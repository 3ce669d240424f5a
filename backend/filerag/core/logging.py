"""Logging setup: one JSON line per record on stdout."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

LEVEL_ENV = "FRAG_LOG_LEVEL"
FORMAT_ENV = "FRAG_LOG_FORMAT"

# Chatty third-party loggers that would drown out watcher and ingest lines.
_QUIET_LOGGERS = ("watchdog", "urllib3", "fitz", "multipart")


class JsonFormatter(logging.Formatter):
    """Serialize records with orjson; ``extra={"ctx_*": ...}`` keys become fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key.startswith("ctx_"):
                payload[key[4:]] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str | int | None = None, use_json: bool | None = None) -> None:
    """Install a single stdout handler on the root logger.

    ``level`` defaults to ``FRAG_LOG_LEVEL`` (INFO); ``FRAG_LOG_FORMAT=text``
    switches to plain lines for interactive use.
    """
    if level is None:
        level = os.environ.get(LEVEL_ENV, "INFO").upper()
    if use_json is None:
        use_json = os.environ.get(FORMAT_ENV, "json").lower() != "text"

    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "filerag") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger"]
