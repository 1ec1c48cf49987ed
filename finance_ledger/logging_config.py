"""
Structured logging for the ledger.

Module loggers live under the "finance_ledger" namespace and propagate to the
single handler installed by setup_logging(). log_action() attaches the
structured fields that JSONFormatter emits next to the message.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional


ROOT_LOGGER = "finance_ledger"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Record attributes set by log_action()
STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")


class JSONFormatter(logging.Formatter):
    """One JSON object per line; empty structured fields are omitted"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", log_format: str = "json",
                  log_file: Optional[str] = None,
                  logger_name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Install the ledger's log handler, replacing any installed earlier.

    Args:
        level: Level name, e.g. "INFO" or "debug"
        log_format: "json" for structured lines, anything else for plain text
        log_file: Append to this file instead of stderr
        logger_name: Logger to configure
    """
    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None,
               exc_info=False):
    """
    Log a message with structured fields.

    Args:
        logger: Module logger
        level: Level name ("info", "warning", ...)
        message: Human readable message
        user_id: Email of the account performing the action
        action: Short verb such as "transfer" or "login_failed"
        resource: Kind of record acted upon
        extra: Further details, emitted as a nested object
        exc_info: True to attach the exception being handled, or an exc_info tuple
    """
    values = {"user_id": user_id, "action": action, "resource": resource, "extra": extra}
    fields = {name: value for name, value in values.items() if value}
    logger.log(logging.getLevelName(level.upper()), message, extra=fields, exc_info=exc_info)
