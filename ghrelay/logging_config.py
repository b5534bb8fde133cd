"""Structured JSON logging configuration.

Every entry carries request_id, level, timestamp and message. Relay-specific
fields (relay_domain, target_url, status_code, duration_ms, bytes,
error_reason) are added when passed through ``extra`` on the log call.

Token values are redacted from messages before they are emitted.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(api.token|token|secret|password|authorization)[\s]*[=:]\s*[^\s&]+",
    re.IGNORECASE,
)

# Optional ``extra`` fields copied into the entry when present.
_CONTEXT_FIELDS = (
    "relay_domain",
    "target_url",
    "status_code",
    "duration_ms",
    "bytes",
    "event",
    "reason",
    "path",
)


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
            "request_id": getattr(record, "request_id", None),
        }

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)

        if hasattr(record, "error_reason"):
            entry["error_reason"] = self._sanitize(str(getattr(record, "error_reason")))

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)

    @staticmethod
    def _sanitize(text: str) -> str:
        """Remove sensitive values from log text."""
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    # uvicorn's access log duplicates RequestLogMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
