import json
import logging
import sys
from datetime import datetime, timezone

from config import settings


class StructuredFormatter(logging.Formatter):
    """JSON formatter, one object per line.

    Fields:
    - severity: Python level name
    - logger: Dotted logger name under "backdrop"
    - message: Human-readable message
    - timestamp: ISO 8601 with timezone
    - request_id: Supersession token of the request (if available)
    - context: Additional structured data
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if hasattr(record, "request_id"):
            log_entry["request_id"] = record.request_id

        if hasattr(record, "context"):
            log_entry["context"] = record.context

        if record.exc_info and record.exc_info[0]:
            log_entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure structured JSON logging on stderr.

    Call once at process startup (the CLI does this in main()). stdout is
    left to command output.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger("backdrop")
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper()))

    # Suppress noisy library loggers
    logging.getLogger("PIL").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the 'backdrop' namespace."""
    return logging.getLogger(f"backdrop.{name}")
