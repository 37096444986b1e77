from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_ATTRS = frozenset(
    {
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
    }
)

# Chatty third-party loggers routed through the bridge.
_QUIET_LOGGERS = ("sqlalchemy.engine", "apscheduler.executors.default", "aiosqlite")


class InterceptHandler(logging.Handler):
    """Forward stdlib records (SQLAlchemy, APScheduler, Alembic) into Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed format strings
            message = record.msg if isinstance(record.msg, str) else str(record.msg)

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STDLIB_RECORD_ATTRS
        }

        escaped = message.replace("{", "{{").replace("}", "}}")
        bound = logger.bind(**context) if context else logger
        bound.opt(depth=6, exception=record.exc_info).log(level, escaped)


def _render_json(message: "logger.Message", metadata: Dict[str, Any]) -> None:
    record = message.record
    span_context = trace.get_current_span().get_span_context()

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "service": metadata["service_name"],
        "environment": metadata["environment"],
        "version": metadata["version"],
    }

    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    if record["extra"]:
        payload.update(record["extra"])

    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
        }

    sys.stdout.write(json.dumps(payload, default=str) + "\n")


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
) -> None:
    """Route Loguru and stdlib logging to structured JSON on stdout.

    Development keeps Loguru's human-readable console format.
    """

    logger.remove()
    if environment == "development":
        logger.add(sys.stderr, level=level, backtrace=False, diagnose=False)
    else:
        metadata = {"service_name": service_name, "environment": environment, "version": version}
        logger.add(
            lambda message: _render_json(message, metadata),
            level=level,
            backtrace=False,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["InterceptHandler", "configure_logging"]
