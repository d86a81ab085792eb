"""Structured logging for the page generation pipeline.

Every recovery point in the pipeline (failed retrieval variant, malformed model
output, empty result set) logs where it happens, so a generated draft can be
traced back to the code path that produced it via its run_id.
"""

import logging
import sys
from typing import Any

_RESERVED_KEYS = ("timestamp", "level", "logger", "function", "message")


def _format_value(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or "=" in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """key=value formatter; values with spaces are quoted."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if hasattr(record, "run_id"):
            log_data["run_id"] = record.run_id

        extra_data = getattr(record, "extra_data", None) or {}
        for key, value in extra_data.items():
            if key in _RESERVED_KEYS:
                key = f"ctx_{key}"
            log_data[key] = value

        line = " ".join(f"{k}={_format_value(v)}" for k, v in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        try:
            from pagegen.core.config import get_settings

            env = get_settings().PAGEGEN_ENV
        except Exception:
            # Settings unavailable (e.g. missing Supabase env) -> INFO
            env = "unknown"
        logger.setLevel(logging.DEBUG if env == "dev" else logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (e.g., run_id, query, error_type)
    """
    extra: dict[str, Any] = {}
    if "run_id" in kwargs:
        extra["run_id"] = kwargs.pop("run_id")
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
