"""Structured JSON logging setup shared by the notification services."""

import json
import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone

# Attributes every LogRecord has; anything else came in via `extra={...}`.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    | {"message", "asctime"}
)


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter tagging every record with its service."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        if self._service is not None:
            log_entry["service"] = self._service
        log_entry["message"] = record.getMessage()

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    service: str,
    level: str = "INFO",
    suppress: Sequence[str] = (),
) -> None:
    """Configure the root logger to emit JSON lines on stdout.

    Args:
        service: Name stamped on every record (e.g. "delivery-tracking").
        level: Root log level (e.g. "INFO", "DEBUG").
        suppress: Logger names pinned to WARNING to quiet third-party
                  libraries such as "celery" or "confluent_kafka".
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(service))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in suppress:
        logging.getLogger(name).setLevel(logging.WARNING)
