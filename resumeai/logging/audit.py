"""Structured JSON logging for the resume AI service.

Every line written to stdout is one JSON object so the hosting platform's
log pipeline can index request and metric events without parsing rules.
Set AUDIT_LOG_FILE to mirror the stream into a file.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from resumeai.config.settings import Settings, get_settings

PACKAGE_LOGGER = "resumeai"
AUDIT_LOGGER = f"{PACKAGE_LOGGER}.audit"

# Set once per HTTP request by the middleware in resumeai.main
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra={"audit_data": {...}}`` fields are inlined."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        entry.update(getattr(record, "audit_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _handlers(settings: Settings) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file))
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Route every ``resumeai.*`` logger through the JSON formatter."""
    settings = settings or get_settings()
    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers.clear()

    formatter = JSONFormatter()
    for handler in _handlers(settings):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # Records stop here; the root logger would print them a second time
    root.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)


def record_metric(name: str, value: float = 1, **tags) -> None:
    """Emit a metric event through the audit logger.

    Metrics are plain log events; aggregation happens downstream.
    """
    get_audit_logger().info(
        "Metric recorded",
        extra={"audit_data": {"metric": name, "value": value, **tags}},
    )


def generate_request_id() -> str:
    """12 hex characters; short enough for headers, unique enough per day."""
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """``with RequestTimer() as t: ...`` leaves the wall time in ``t.elapsed_ms``."""

    def __init__(self):
        self._started: float = 0.0
        self.elapsed_ms: float = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.elapsed_ms = round((time.perf_counter() - self._started) * 1000, 2)
        return False
