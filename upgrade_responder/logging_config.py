"""Log formatting for the responder.

Records emitted through ``structured_logging`` carry their payload on the
record under ``STRUCTURED_FIELDS_ATTR``. The JSON formatter lifts those fields
to top-level keys so aggregators can filter on ``event_type`` or
``correlation_id``; the text formatter appends them as a compact JSON suffix.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


STRUCTURED_FIELDS_ATTR = "structured_fields"
LOG_FORMATS = ("text", "json")
SERVICE_NAME = "upgrade-responder"

_RESERVED_KEYS = frozenset({"timestamp", "severity", "logger", "message", "service"})


def _structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = getattr(record, STRUCTURED_FIELDS_ATTR, None)
    return fields if isinstance(fields, dict) else {}


class _UTCFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:  # noqa: N802
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(_UTCFormatter):
    """One JSON object per line, with structured fields as top-level keys.

    Fields that collide with the envelope keys are nested under ``fields``.
    """

    def __init__(self, include_identifiers: bool = False) -> None:
        super().__init__()
        self.include_identifiers = include_identifiers

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "severity": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "message": record.getMessage(),
        }
        if self.include_identifiers:
            payload["process"] = record.process
            payload["thread"] = record.threadName

        clashing = {}
        for key, value in _structured_fields(record).items():
            if key in _RESERVED_KEYS:
                clashing[key] = value
            else:
                payload[key] = value
        if clashing:
            payload["fields"] = clashing

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(_UTCFormatter):
    """``<time> <level> <logger>: <message> {fields}`` for terminals."""

    def __init__(self, include_identifiers: bool = False) -> None:
        template = "%(asctime)s %(levelname)s %(name)s: %(message)s"
        if include_identifiers:
            template = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
        super().__init__(fmt=template)

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        line = super().formatMessage(record)
        fields = _structured_fields(record)
        if fields:
            line = f"{line} {json.dumps(fields, sort_keys=True, default=str)}"
        return line


def configure_logging(
    level: str = "INFO",
    log_format: str = "text",
    include_identifiers: bool = False,
    debug: bool = False,
) -> None:
    """Install a single stderr handler on the root logger.

    The werkzeug per-request access log stays at WARNING unless ``debug`` is
    set, since ``routes.register_request_logging`` already logs each request.

    Args:
        level: Logging level name (UR_LOG_LEVEL).
        log_format: ``text`` or ``json`` (UR_LOG_FORMAT).
        include_identifiers: Add process and thread names (UR_LOG_INCLUDE_IDENTIFIERS).
        debug: Force DEBUG regardless of ``level`` (UR_DEBUG).
    """
    root_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JSONFormatter(include_identifiers=include_identifiers)
    else:
        formatter = TextFormatter(include_identifiers=include_identifiers)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(root_level)
    root_logger.addHandler(handler)

    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.handlers.clear()
    werkzeug_logger.propagate = True
    werkzeug_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
