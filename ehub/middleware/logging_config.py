"""
Structured logging configuration.

Every record emitted while a request is active carries ``request_id`` and
``user_id`` (via RequestContextFilter), so a service log line such as
"Assignment 7 accepted by fabricator 3" can be joined to its HTTP request.

Environment:
    LOG_LEVEL   DEBUG / INFO / ... (default: INFO in production, DEBUG otherwise)
    LOG_FORMAT  "json" or "readable" (default: json in production)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Record attributes copied into JSON output when present
_EXTRA_FIELDS = (
    "request_id",
    "user_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "project_id",
    "assignment_id",
)

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic", "flask_limiter")


class RequestContextFilter(logging.Filter):
    """Attach the current request id and acting user to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, "request_id", None)
            record.user_id = getattr(g, "current_user_id", None)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        ctx = ""
        request_id = getattr(record, "request_id", None)
        if request_id:
            user_id = getattr(record, "user_id", None)
            ctx = f" [req={request_id}" + (f" user={user_id}]" if user_id else "]")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}{ctx}: {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    # Tests build several apps; replace rather than stack handlers.
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
