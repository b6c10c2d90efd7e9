"""Logging for form persistence.

Records are written as JSON lines by default. Structured context travels in
``extra={"extra_fields": {...}}`` and is merged into the top level of the
line, so ``form_id``, ``event`` and friends can be filtered on directly.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, TextIO

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Formats each record as one JSON object.

    Args:
        static_fields: Fields added to every line, e.g. the host application
            name. Per-record fields win on conflict.
    """

    def __init__(self, static_fields: Optional[Mapping[str, Any]] = None):
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = dict(self.static_fields)
        entry.update(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            component=record.name,
            message=record.getMessage(),
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(extra_fields)
        entry.update(
            (k, v)
            for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS and k != "extra_fields"
        )
        return json.dumps(entry, default=str, ensure_ascii=False)


def _resolve_level(level: Optional[str]) -> str:
    return (
        level
        or os.environ.get("FORM_PERSISTENCE_LOG_LEVEL")
        or os.environ.get("LOG_LEVEL")
        or "INFO"
    ).upper()


def setup_logging(
    level: Optional[str] = None,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """Routes every log record to a single handler on the root logger.

    Args:
        level: Log level. Defaults to FORM_PERSISTENCE_LOG_LEVEL, then
            LOG_LEVEL, then INFO.
        json_output: JSON lines when true, ``PLAIN_FORMAT`` otherwise.
        stream: Destination stream. Defaults to stderr.

    Returns:
        The installed handler.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
