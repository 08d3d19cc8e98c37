"""
Logging helpers.

- structured_log: one JSON line per pipeline event
- JSONFormatter: optional formatter for shipping logs to aggregators
- configure_logging: console setup used by the CLI
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict

logger = logging.getLogger("tariff_rag")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def structured_log(level: str, event: str, **kwargs) -> None:
    """
    Emit structured log message with context.

    Usage:
        structured_log("INFO", "document_committed", kind="rate_table", version="2025-2026")
    """
    log_data = {
        "event": event,
        "timestamp": datetime.utcnow().isoformat(),
        **kwargs
    }

    message = json.dumps(log_data, default=str)

    if level == "DEBUG":
        logger.debug(message)
    elif level == "INFO":
        logger.info(message)
    elif level == "WARNING":
        logger.warning(message)
    elif level == "ERROR":
        logger.error(message)
    else:
        logger.info(message)


class JSONFormatter(logging.Formatter):
    """Format log records as JSON with any `extra` fields attached."""

    RESERVED = {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "message", "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in self.RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), handlers=[handler])
