"""
JSON logging for the exam preview service.

One log line is one JSON object on stdout. Entries are routed through
named channels:

- http: request lifecycle and error responses
- db: exam store transactions and compare-and-swap retries
- preview: state transitions and authorization denials
- marking: marking rule edits
- audit: audit rows written alongside changes

The request ID set by the middleware in main.py is stamped on every
entry logged while that request is being handled.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from app.config import LOG_LEVEL

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "db", "preview", "marking", "audit"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Render a record as {timestamp, level, message, channel, context, extra}.

    ``context`` carries identifiers (request_id, exam_id, caller_id,
    question_index); ``extra`` carries measurements such as duration_ms.
    Tracebacks, when present, go under ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    """Install the JSON handler on the root logger and set LOG_LEVEL on every channel."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    level = getattr(logging, LOG_LEVEL, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"app.{channel}").setLevel(level)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger(f"app.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Log ``message`` on a channel logger with identifiers and measurements attached.

    Args:
        logger: A logger from get_logger()
        level: "DEBUG", "INFO", "WARNING" or "ERROR"
        message: Human-readable message
        context: Identifiers, e.g. {"exam_id": ..., "caller_id": ...}
        extra_data: Measurements, e.g. {"duration_ms": 4.2, "attempt": 1}
    """
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
