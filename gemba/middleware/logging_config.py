"""
Structured logging configuration.

- Development: coloured one-line format with the walk/finding references
- Production: JSON lines for the log aggregator
- LOG_LEVEL picks the level; LOG_FORMAT ("json" | "readable") overrides the
  per-environment format choice

Services log lifecycle events with ``extra={"event_type": ..., "walk_id": ...,
"finding_id": ..., "user_id": ...}``. Both formatters surface those fields:
the JSON formatter groups them under ``"gemba"``, the readable formatter
prints the event as a tag and the references as ``walk=3 finding=7``.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request-scoped fields set by the timing middleware.
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

# Domain references set by the services.
DOMAIN_FIELDS = ("event_type", "walk_id", "finding_id", "user_id")

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic.runtime.migration", "flask_limiter")


def _present(record, keys) -> dict:
    return {k: getattr(record, k) for k in keys if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; domain references nested under ``gemba``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_present(record, REQUEST_FIELDS))
        domain = _present(record, DOMAIN_FIELDS)
        if domain:
            entry["gemba"] = domain
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """
    Coloured single-line formatter for development.

        14:02:11 INFO     [finding_closed] gemba.services.finding_lifecycle: Finding closed  finding=7 user=3f2a9c1e
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color=True):
        super().__init__()
        self.use_color = use_color

    @staticmethod
    def _refs(record) -> str:
        parts = []
        for key, label in (("walk_id", "walk"), ("finding_id", "finding")):
            value = getattr(record, key, None)
            if value is not None:
                parts.append(f"{label}={value}")
        user_id = getattr(record, "user_id", None)
        if user_id:
            parts.append(f"user={str(user_id)[:8]}")
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"req={request_id}")
        return "  " + " ".join(parts) if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        event = getattr(record, "event_type", None)
        tag = f"[{event}] " if event else ""
        duration = getattr(record, "duration_ms", None)
        dur = f" [{duration:.0f}ms]" if duration is not None else ""

        line = f"{ts} {level} {tag}{record.name}: {record.getMessage()}{self._refs(record)}{dur}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def select_formatter(app) -> logging.Formatter:
    """JSON in production, readable elsewhere, unless LOG_FORMAT says otherwise."""
    is_prod = not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)
    choice = os.getenv("LOG_FORMAT", "").strip().lower()
    if choice not in ("json", "readable"):
        choice = "json" if is_prod else "readable"
    if choice == "json":
        return JSONFormatter()
    return ReadableFormatter(use_color=sys.stderr.isatty())


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG otherwise. Calling this
    again (one app per test session, several in some tests) replaces the
    handler rather than stacking a second one.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = select_formatter(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, type(formatter).__name__)
    return handler
