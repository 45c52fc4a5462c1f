"""Logging setup: JSON lines on Cloud Run, readable text locally.

Every record carries the current request ID (set by the request-id
middleware through ``bind_request_id``) so lifecycle transitions and
broadcaster activity can be correlated with the HTTP call that caused them.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_GCP_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}


class RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id`` from the active request context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


class GCPJsonFormatter(JsonFormatter):
    """Maps Python level names onto Cloud Logging ``severity``."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["severity"] = _GCP_SEVERITY.get(record.levelname, record.levelname)
        log_record.pop("levelname", None)


def setup_logging(*, level: str | None = None) -> None:
    """Install a single root handler; safe to call more than once."""
    level = level or os.getenv("LIFECYCLE_LOG_LEVEL", "INFO")
    is_cloud_run = bool(os.getenv("K_SERVICE"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if is_cloud_run:
        handler.setFormatter(GCPJsonFormatter(
            fmt="%(message)s %(name)s %(request_id)s",
            rename_fields={"name": "logger"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        ))
    root.addHandler(handler)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:16]


def bind_request_id(request_id: str) -> None:
    _request_id.set(request_id)
