"""
Logging Configuration Module

Structured logging for ledger operations. Every record written through
log_action() carries the account, operation and slot it touched, so the
JSON output can be filtered per account or per deposit/loan slot.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


ROOT_LOGGER = "savings_ledger"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Record attributes copied into the JSON entry when set
CONTEXT_FIELDS = ("account", "action", "resource", "details")


class JSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = ROOT_LOGGER,
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the ledger's logger tree.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Logger to configure; child loggers inherit its handler
        log_format: "json" for structured output, anything else for plain text
        log_file: Append to this file instead of stderr

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Calling setup twice must not duplicate output
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(logging.getLevelName(level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               account: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, details: Optional[dict] = None) -> None:
    """
    Log a ledger action with its context fields.

    Args:
        logger: Module logger
        level: Level name, e.g. "info" or "warning"
        message: Human readable summary
        account: Account the action ran for
        action: Ledger operation name
        resource: Slot acted upon, e.g. "deposit:0" or "loan:1"
        details: Additional structured data
    """
    context = {"account": account, "action": action, "resource": resource, "details": details}
    logger.log(
        logging.getLevelName(level.upper()), message,
        extra={k: v for k, v in context.items() if v is not None}
    )
