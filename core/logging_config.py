"""Structured JSON logging shared by the Streamlit app, the API and the seed scripts.

Service code attaches structured fields through ``extra`` using a ``ctx_``
prefix (``extra={"ctx_plan_id": 7}``); the formatter collects them under
``context`` with the prefix removed. Inside an API request the current request
id is added to every line.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

CONTEXT_PREFIX = "ctx_"
_HANDLER_NAME = "practice-plans-json"
_NOISY_LOGGERS = ("sqlalchemy.engine", "streamlit", "watchdog")

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)


def bind_request_id(value: Optional[str]) -> contextvars.Token:
    return _request_id.set(value)


def unbind_request_id(token: contextvars.Token) -> None:
    _request_id.reset(token)


def current_request_id() -> Optional[str]:
    return _request_id.get()


def context_fields(record: logging.LogRecord) -> dict[str, object]:
    return {k[len(CONTEXT_PREFIX):]: v for k, v in record.__dict__.items() if k.startswith(CONTEXT_PREFIX)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        request_id = current_request_id()
        if request_id:
            entry["request_id"] = request_id
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        context = context_fields(record)
        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", *, stream=None) -> logging.Handler:
    """Install the JSON handler on the root logger once and return it.

    Calling again only adjusts the level.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return handler

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
