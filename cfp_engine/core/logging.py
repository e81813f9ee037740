"""Centralized logging configuration.

Every record that reaches the stdout handler is passed through
``RedactingFilter`` so credential-shaped substrings never hit the logs.
"""

import json
import logging
import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

from cfp_engine.core.config import settings

REDACTION_MARKER = "[REDACTED]"

_SENSITIVE_PATTERNS = [
    re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"api[_-]?keys?[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"passwords?[\"']?\s*[:=]\s*[\"']?[^\s\"',]+", re.IGNORECASE),
    re.compile(r"tokens?[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
]


def redact_secrets(text: str) -> str:
    """Replace credential-shaped substrings with the redaction marker."""
    if not text:
        return text
    for pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub(REDACTION_MARKER, text)
    return text


def sanitize_error_for_logging(exc: BaseException) -> dict[str, Any]:
    """Return a log-safe view of an exception: name, message and stack."""
    stack = None
    if exc.__traceback__ is not None:
        stack = redact_secrets("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    return {
        "name": type(exc).__name__,
        "message": redact_secrets(str(exc)),
        "stack": stack,
    }


class RedactingFilter(logging.Filter):
    """Scrub secrets from the rendered message and exception text of a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(record.getMessage())
        record.args = None
        if record.exc_info and record.exc_info[1]:
            record.exc_text = redact_secrets(
                "".join(traceback.format_exception(*record.exc_info))
            ).rstrip("\n")
            record.exc_info = None
        return True


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            log_data["exception"] = record.exc_text
        for key in ("operation", "business_id", "job_id", "attempt"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)
        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """Configure logging for the entire application."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RedactingFilter())

    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root.addHandler(handler)

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING if not settings.app_debug else level)
    logging.getLogger("celery").setLevel(level)
