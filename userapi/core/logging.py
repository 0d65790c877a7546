"""Logging setup.

Everything logs through module-level ``logging.getLogger(__name__)`` loggers;
this module only decides levels, format and the request id on each record.
"""
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id", "color_message"}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", "")
        if request_id:
            payload["request_id"] = request_id
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"


def parse_level(level: str) -> int:
    return _LEVELS.get(level.strip().lower(), logging.INFO)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Install a single stderr handler on the root logger. Safe to call twice."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if fmt.strip().lower() == "console":
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    else:
        handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_userapi", False):
            root.removeHandler(existing)
    handler._userapi = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(parse_level(level))

    # uvicorn's access log duplicates the request logging middleware.
    logging.getLogger("uvicorn.access").propagate = False
