from __future__ import annotations

import contextvars
import json
import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

_LOG_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "request_toolkit_log_ctx", default={}
)
_RESERVED_LOG_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}
ROOT_LOGGER_NAME = "request-toolkit"


def get_logger(component: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


class ContextFilter(logging.Filter):
    """Copy the pushed log context onto records; fields passed via ``extra=`` win."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _LOG_CONTEXT.get({}).items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if isinstance(value, (set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, event name, then extra fields."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        timestamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        return f"{timestamp}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, _jsonable(value))
            for key, value in vars(record).items()
            if key not in _RESERVED_LOG_RECORD_ATTRS and key not in payload and value is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        # Paths, enums and other objects fall back to their string form.
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.INFO, log_file: str | Path | None = None) -> logging.Logger:
    """Attach structured handlers to the toolkit logger.

    Library code only asks for named loggers; applications that want the
    toolkit's JSON output call this once at startup.
    """
    formatter = StructuredFormatter()
    context_filter = ContextFilter()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def push_log_context(**fields: Any) -> contextvars.Token:
    """Layer ``fields`` over the current context; ``None`` values are dropped."""
    merged = {**_LOG_CONTEXT.get({}), **{key: value for key, value in fields.items() if value is not None}}
    return _LOG_CONTEXT.set(merged)


def pop_log_context(token: contextvars.Token) -> None:
    _LOG_CONTEXT.reset(token)
