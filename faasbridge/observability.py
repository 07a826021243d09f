"""
Observability for faasbridge.

Logging setup for the runtime process. Every record emitted while an
invocation is being served is stamped with that invocation's request id and
trace id, so handler logs and runtime logs correlate without the handler
having to pass anything around.

Two output formats:
- text: the plain `asctime - name - level - message` format
- json: one JSON object per line, for log pipelines

Example JSON output:
    {"timestamp": "2026-01-02T10:30:00+00:00", "level": "info",
     "logger": "faasbridge.runtime.loop", "message": "...",
     "request_id": "8476a536-...", "trace_id": "Root=1-..."}
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from faasbridge.runtime.context import current_context

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "request_id", "trace_id"}


class InvocationLogFilter(logging.Filter):
    """Stamps records with the current invocation's request id and trace id."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_context()
        record.request_id = context.request_id if context else None
        record.trace_id = context.trace_id if context else None
        return True


class JSONFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Each entry includes:
    - timestamp (ISO 8601)
    - level
    - logger name and message
    - request_id / trace_id when inside an invocation
    - any `extra=` fields passed to the logging call
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id
        trace_id = getattr(record, "trace_id", None)
        if trace_id:
            entry["trace_id"] = trace_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure root logging for the runtime process.

    Replaces any handlers installed earlier, so calling it twice is safe.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(InvocationLogFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)
