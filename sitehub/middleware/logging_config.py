"""
Logging setup for SiteHub.

Every record emitted while a request is being served is tagged with the
request id, the calling user and the resource ids taken from the matched
URL (``/sites/<site_id>/wifi-deployment/<dep_id>`` → site_id, dep_id).
Production writes one JSON object per line; development and tests get a
short coloured line with the same context in brackets.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# URL converters whose values are worth carrying on log records
RESOURCE_KEYS = (
    "group_id",
    "site_id",
    "dep_id",
    "task_id",
    "doc_id",
    "wan_id",
    "tool_id",
    "archived_id",
)

# Set by the timing middleware on its per-request summary line
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")


class RequestContextFilter(logging.Filter):
    """Copy request id, user id and URL resource ids onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = {}
        if has_request_context():
            identity = getattr(g, "identity", None)
            context["request_id"] = getattr(g, "request_id", None)
            context["user_id"] = identity.id if identity else None
            for key, value in (request.view_args or {}).items():
                if key in RESOURCE_KEYS:
                    context[key] = value
        for key, value in context.items():
            if value is not None and getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def record_context(record):
    """Context attributes present on ``record``, in a stable order."""
    keys = ("request_id", "user_id") + RESOURCE_KEYS
    return {k: getattr(record, k) for k in keys if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(record_context(record))
        for key in REQUEST_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
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
        ts = datetime.now().strftime("%H:%M:%S")
        context = record_context(record)
        tag = " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]" if context else ""
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}{tag}: {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger.

    LOG_LEVEL overrides the default (INFO in production, DEBUG otherwise).
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    # Cleared first so repeated app builds in tests don't stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
