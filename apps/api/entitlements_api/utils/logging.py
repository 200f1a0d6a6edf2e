"""Structured JSON logging utilities.

- JSON format for log aggregation (CloudWatch, Datadog, etc.)
- Includes request_id, user_id and event_id from context
- Standard fields: timestamp, level, message, module, func, line
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from entitlements_api.context import event_id_var, request_id_var, user_id_var
from entitlements_api.utils.sanitize import REDACTED, SENSITIVE_KEYS, sanitize_exc, sanitize_obj, sanitize_str

# LogRecord attributes that are never copied as extra fields
_RESERVED_ATTRS = frozenset({
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
})


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request context.

    Formats log records as JSON with standard fields:
    - timestamp: ISO 8601 UTC
    - level: log level (INFO, ERROR, etc.)
    - message: log message
    - module / func / line: call site
    - request_id: from context variable (if set)
    - user_id: from context variable (if set)
    - event_id: Stripe event id from context variable (if set)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": sanitize_str(record.getMessage()),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        for field, var in (
            ("request_id", request_id_var),
            ("user_id", user_id_var),
            ("event_id", event_id_var),
        ):
            value = var.get()
            if value:
                log_data[field] = value

        if record.exc_info:
            log_data["exc_info"] = sanitize_exc(record.exc_info)

        # Extra fields from logger.info(..., extra={...})
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if key.lower() in SENSITIVE_KEYS:
                log_data[key] = REDACTED
            else:
                log_data[key] = sanitize_obj(value)

        return json.dumps(log_data, default=str)


def configure_json_logging(log_level: str = "INFO") -> None:
    """Configure root logger with JSON formatter.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
