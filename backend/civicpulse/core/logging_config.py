"""
Logging setup for CivicPulse.

``setup_logging`` configures the root logger once at process start. Modules
obtain loggers through ``get_logger``, which can pin context fields such as
``store`` onto every record; the JSON formatter emits those fields alongside
the message.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import LoggingConfig

# Record attributes copied into JSON output when present
CONTEXT_FIELDS = ("incident_id", "user_id", "store")

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("uvicorn.access", "asyncio", "aiohttp", "tenacity")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class ColorFormatter(logging.Formatter):
    """Console formatter that tints the whole line by level."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        return f"{color}{super().format(record)}{self.RESET}"


class ContextFilter(logging.Filter):
    """Stamps fixed context fields onto every record of a logger."""

    def __init__(self, context: Dict[str, Any]):
        super().__init__()
        self.context = dict(context)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _file_handler(config: LoggingConfig, file_path: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        logging.getLogger(__name__).warning(f"File logging disabled, cannot open {file_path}: {e}")
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: Optional[LoggingConfig] = None, log_file: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        config: Logging configuration (defaults to ``LoggingConfig()``)
        log_file: Log file path, overrides ``config.file_path``
    """
    config = config or LoggingConfig()
    level = config.level.value

    if config.json_format:
        console_formatter: logging.Formatter = JSONFormatter()
        file_formatter: logging.Formatter = console_formatter
    else:
        console_formatter = ColorFormatter(fmt=config.format, datefmt=config.date_format)
        file_formatter = logging.Formatter(fmt=config.format, datefmt=config.date_format)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(console_formatter)
    handlers: List[logging.Handler] = [console]

    file_path = log_file or config.file_path
    if file_path:
        handler = _file_handler(config, file_path, file_formatter)
        if handler is not None:
            handlers.append(handler)

    for handler in handlers:
        handler.setLevel(level)
    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured at {level}")


def get_logger(name: str, extra: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Get a module logger, optionally pinning context fields onto its records.

    The filter is attached once per logger name; later calls with different
    context do not replace it.
    """
    logger = logging.getLogger(name)
    if extra and not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter(extra))
    return logger


class LoggingContext:
    """Logs the start, outcome and duration of a section."""

    def __init__(self, logger: logging.Logger, message: str, level: int = logging.INFO):
        self.logger = logger
        self.message = message
        self.level = level
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"Starting: {self.message}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - self._started
        if exc_type is None:
            self.logger.log(self.level, f"{self.message} completed in {elapsed:.2f}s")
        else:
            self.logger.warning(f"{self.message} failed in {elapsed:.2f}s: {exc_type.__name__}")
        return False
