import logging
import sys
import json
from typing import Any, Dict
from functools import lru_cache

from src.infra.config.settings import settings

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""
    def format(self, record: logging.LogRecord) -> str:
        # Base log data
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name
        }

        # Add message if it's not already JSON
        try:
            if isinstance(record.msg, str) and record.msg.startswith("{"):
                log_data.update(json.loads(record.msg))
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, AttributeError):
            log_data["message"] = record.getMessage()

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)

class Logger:
    def __init__(self, name: str = "CundinaIndexer"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
        self.logger.propagate = True  # Allow logs to propagate to parent loggers

        # Console Handler with JSON formatting
        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(JsonFormatter())
            self.logger.addHandler(console_handler)

    def _log(self, level: int, message: Any, extra: Dict[str, Any] = None, exc_info: bool = False) -> None:
        if extra is None:
            extra = {}

        # If message is a dict, convert to JSON string
        if isinstance(message, dict):
            message = json.dumps(message, default=str)

        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def info(self, message: Any, extra: Dict[str, Any] = None) -> None:
        self._log(logging.INFO, message, extra)

    def error(self, message: Any, extra: Dict[str, Any] = None, exc_info: bool = False) -> None:
        self._log(logging.ERROR, message, extra, exc_info)

    def warning(self, message: Any, extra: Dict[str, Any] = None) -> None:
        self._log(logging.WARNING, message, extra)

    def debug(self, message: Any, extra: Dict[str, Any] = None) -> None:
        self._log(logging.DEBUG, message, extra)

# Global logger instance
logger = Logger()

@lru_cache()
def get_logger(name: str = None) -> Logger:
    """Get a logger instance with optional name"""
    return Logger(name) if name else logger
