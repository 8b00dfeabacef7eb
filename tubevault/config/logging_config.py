"""
Logging configuration.

Human-readable colored output during development, one JSON object per line in
production (or whenever ``LOG_JSON`` is set). Context such as ``job_id`` or
``returncode`` is attached through ``extra={...}`` and ends up as top-level
keys of the JSON record.
"""

import json
import logging
import logging.config
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .settings import Settings, settings as default_settings

# LogRecord attributes that are not user context
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# third-party loggers and the most verbose level they may emit
_LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "sqlalchemy.engine": "WARNING",
    "aiosqlite": "WARNING",
    "asyncio": "WARNING",
}

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_FILE_BYTES = 10 * 1024 * 1024
_LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """One JSON document per record, context fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _RECORD_FIELDS
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        plain = record.levelname
        color = self.LEVEL_COLORS.get(plain)
        if color:
            record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def _logging_config(
    level: str,
    fmt: str,
    json_format: bool,
    log_file: Optional[Path],
) -> Dict[str, Any]:
    handlers = ["console"]
    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "colored": {"()": ColoredFormatter, "format": fmt, "datefmt": _DATE_FORMAT},
            "json": {"()": JSONFormatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if json_format else "colored",
                "stream": sys.stdout,
            },
        },
    }

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "json",
            "filename": str(log_file),
            "maxBytes": _LOG_FILE_BYTES,
            "backupCount": _LOG_FILE_BACKUPS,
            "encoding": "utf-8",
        }
        handlers.append("file")

    loggers = {"tubevault": {"level": level, "handlers": handlers, "propagate": False}}
    for name, library_level in _LIBRARY_LEVELS.items():
        loggers[name] = {"level": library_level, "handlers": handlers, "propagate": False}

    config["loggers"] = loggers
    config["root"] = {"level": level, "handlers": handlers}
    return config


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    json_format: Optional[bool] = None,
    config: Optional[Settings] = None,
) -> None:
    """
    Configure process-wide logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; defaults to ``LOG_LEVEL``
        log_file: rotating JSON log file; defaults to ``LOG_FILE``
        json_format: force JSON console output on or off; by default JSON is
            used when ``LOG_JSON`` is set or the environment is production
        config: settings to read defaults from
    """
    cfg = config or default_settings
    level = (log_level or cfg.LOG_LEVEL.value).upper()
    target = Path(log_file) if log_file else cfg.LOG_FILE

    if json_format is None:
        json_format = cfg.LOG_JSON if cfg.LOG_JSON is not None else cfg.is_production

    logging.config.dictConfig(_logging_config(level, cfg.LOG_FORMAT, json_format, target))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "log_level": level,
            "json_format": json_format,
            "log_file": str(target) if target else None,
            "environment": cfg.ENVIRONMENT.value,
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass ``__name__``."""
    return logging.getLogger(name)


class CorrelationAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into per-call ``extra``."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def add_correlation_id(logger: logging.Logger, correlation_id: str) -> logging.LoggerAdapter:
    """Bind a request correlation ID to every record emitted through the adapter."""
    return CorrelationAdapter(logger, {"correlation_id": correlation_id})
