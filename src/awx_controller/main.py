"""Process setup for the AWX controller.

Logging is structured: every record carries its ``extra`` fields. JSON
output suits CI logs and collectors; text output suits a terminal.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from .client import AwxClient
from .config import Config
from .security import check_transport_security

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_ATTRS = frozenset(
    {
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
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with extra fields appended as key=value."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key != "asctime"
        ]
        return f"{line} {' '.join(extras)}" if extras else line


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure root logging on stderr.

    Args:
        level: Log level name.
        json_output: Emit JSON lines instead of text.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else TextFormatter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Request-level chatter from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def connect(config: Config) -> AwxClient:
    """Build an AWX client after checking that the transport is acceptable.

    Raises:
        InsecureTransportError: If credentials would travel in cleartext.
    """
    check_transport_security(config)
    logger = logging.getLogger(__name__)
    logger.info(
        "Connecting to AWX",
        extra={
            "host": config.host,
            "auth": "token" if config.token else "basic",
            "verify_tls": not config.insecure,
        },
    )
    return AwxClient.from_config(config)
