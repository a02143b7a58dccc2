"""
Structured Logging Configuration Module

JSON log lines for account, session and ledger events. Each event may
carry the acting account, an action name, the resource touched and a
free-form `extra` mapping; credential material is masked before output.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional


STRUCTURED_FIELDS = ("correlation_id", "user_id", "action", "resource", "extra")

# Keys masked wherever they appear in `extra`
REDACTED_KEYS = frozenset({"credential", "password", "credential_hash", "credential_salt"})

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def redact(value: Any) -> Any:
    """Mask credential material in nested dicts/lists"""
    if isinstance(value, dict):
        return {
            k: "***" if k in REDACTED_KEYS else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


class JSONFormatter(logging.Formatter):
    """One JSON object per record; None fields are left out"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = redact(value) if name == "extra" else value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "finflow",
                  fmt: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a single handler to the named logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        fmt: "json" for JSONFormatter output, "text" for plain lines
        log_file: Write to this file instead of stderr

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Repeated setup replaces rather than stacks handlers
    for old in logger.handlers[:]:
        logger.removeHandler(old)
        old.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "finflow") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log an event with structured fields.

    Args:
        logger: Logger instance
        level: Log level name (info, warning, error, ...)
        message: Human-readable message
        user_id: Account the event concerns
        action: Dotted action name, e.g. "ledger.deposit"
        resource: Kind of object acted upon
        correlation_id: Correlation ID for request tracing
        extra: Additional structured data
    """
    fields = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    logger.log(
        getattr(logging, level.upper()),
        message,
        extra={k: v for k, v in fields.items() if v}
    )
