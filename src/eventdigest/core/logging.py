"""
Logging infrastructure for eventdigest.

Human-readable console output plus rotating text and JSON-lines files.
Flush outcomes are logged with ``extra`` fields (project_key, action, counts)
so the JSON log doubles as the operator's record of every flush attempt.
"""

import json
import logging
import sys
import threading
import time
from contextvars import ContextVar, Token
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from eventdigest.core.paths import LOG_DIR

CONSOLE_FORMAT = "%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

MAX_LOG_SIZE_MB = 10
MAX_LOG_FILES = 5

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_RECORD_ATTRS = frozenset(
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
        "message",
        "taskName",
    }
)


class StructuredLogFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_RECORD_ATTRS:
                    continue
                try:
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data)


class ColoredConsoleFormatter(logging.Formatter):
    """Formatter that colors the level name when writing to a terminal."""

    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None, use_colors: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        original_levelname = record.levelname
        color = self.COLORS.get(record.levelno, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def _coerce_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper())
    return level


def setup_logging(
    console_level: int | str = DEFAULT_CONSOLE_LEVEL,
    file_level: int | str = DEFAULT_FILE_LEVEL,
    log_dir: Path | str | None = None,
    log_file: str | None = "eventdigest.log",
    structured_file: str | None = "eventdigest.jsonl",
    use_colors: bool = True,
) -> logging.Logger:
    """
    Set up logging for eventdigest.

    Configures:
    - Console handler with human-readable format
    - Rotating file handler with detailed format (None to disable)
    - Rotating JSON-lines file for structured logging (None to disable)

    Args:
        console_level: Log level for console output
        file_level: Log level for file output
        log_dir: Directory for log files (defaults to DATA_ROOT/logs)
        log_file: Name of the main log file
        structured_file: Name of the JSON log file
        use_colors: Use colored output in console

    Returns:
        Root logger instance
    """
    console_level = _coerce_level(console_level)
    file_level = _coerce_level(file_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        ColoredConsoleFormatter(
            fmt=CONSOLE_FORMAT,
            datefmt=CONSOLE_DATE_FORMAT,
            use_colors=use_colors,
        )
    )
    root_logger.addHandler(console_handler)

    if log_file or structured_file:
        log_dir = Path(log_dir) if log_dir is not None else LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)

        if log_file:
            file_handler = RotatingFileHandler(
                log_dir / log_file,
                maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
                backupCount=MAX_LOG_FILES,
                encoding="utf-8",
            )
            file_handler.setLevel(file_level)
            file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
            root_logger.addHandler(file_handler)

        if structured_file:
            structured_handler = RotatingFileHandler(
                log_dir / structured_file,
                maxBytes=MAX_LOG_SIZE_MB * 1024 * 1024,
                backupCount=MAX_LOG_FILES,
                encoding="utf-8",
            )
            structured_handler.setLevel(file_level)
            structured_handler.setFormatter(StructuredLogFormatter())
            root_logger.addHandler(structured_handler)

    # The OpenAI and HTTP clients are chatty at DEBUG
    for noisy in ("httpx", "httpcore", "openai", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.debug(
        f"Logging initialized (console: {logging.getLevelName(console_level)}, "
        f"file: {logging.getLevelName(file_level)})"
    )

    return root_logger


_log_context: ContextVar[dict[str, Any]] = ContextVar("eventdigest_log_context", default={})
_factory_lock = threading.Lock()
_factory_installed = False


def _install_record_factory() -> None:
    """Install, once, a record factory that copies the current LogContext fields."""
    global _factory_installed
    with _factory_lock:
        if _factory_installed:
            return
        old_factory = logging.getLogRecordFactory()

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in _log_context.get().items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        _factory_installed = True


class LogContext:
    """
    Context manager that stamps extra fields on every record created inside it.

    Context is per thread, so concurrent sweep workers each log their own
    project_key.

    Usage:
        with LogContext(project_key="redline", trigger="sweep"):
            logger.info("Processing...")
    """

    def __init__(self, **context: Any):
        self.context = context
        self._token: Token | None = None

    def __enter__(self):
        _install_record_factory()
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: Exception,
    level: int = logging.ERROR,
    **extra: Any,
) -> None:
    """Log an exception with its type, traceback and extra context fields."""
    logger.log(
        level,
        f"{message}: {type(exc).__name__}: {exc}",
        exc_info=True,
        extra=extra,
    )


class OperationTimer:
    """
    Context manager for timing operations and logging the result.

    ``extra`` keys must not repeat a field set by an enclosing LogContext;
    logging refuses to overwrite record attributes.

    Usage:
        with OperationTimer(logger, "flush", flushed_project="redline"):
            ...
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        level: int = logging.DEBUG,
        **extra: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.extra = extra
        self.start_time: float | None = None
        self.duration: float | None = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.log(
            self.level,
            f"Starting {self.operation}",
            extra={"operation": self.operation, **self.extra},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return

        self.duration = time.monotonic() - self.start_time
        fields = {"operation": self.operation, "duration_seconds": self.duration, **self.extra}
        if exc_type is None:
            if self.duration < 1:
                duration_str = f"{self.duration * 1000:.1f}ms"
            else:
                duration_str = f"{self.duration:.2f}s"
            self.logger.log(
                self.level, f"{self.operation} completed in {duration_str}", extra=fields
            )
        else:
            self.logger.log(
                logging.ERROR,
                f"{self.operation} failed after {self.duration:.2f}s",
                exc_info=True,
                extra=fields,
            )
