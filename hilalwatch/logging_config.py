"""
HILALWATCH Logging Configuration

Centralized logging for the crescent visibility engine:
- Console output and optional rotating log file
- Per-module log level overrides
- Request IDs: every log line emitted while a top-level request (a grid
  scan or a calendar computation) is running carries that request's ID,
  so interleaved requests can be told apart in one log
- Convenience helpers (log_exception, log_timing)

Usage:
    from hilalwatch.logging_config import setup_logging, get_logger, request_context

    setup_logging(log_level="INFO", log_file="hilalwatch.log")

    logger = get_logger(__name__)

    with request_context(prefix="cal") as request_id:
        logger.info("Calendar requested")  # Tagged with request_id

    with log_timing(logger, "full_grid"):
        grid = await compute_full_grid(day)
"""

import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Generator, Optional

ROOT_LOGGER_NAME = "hilalwatch"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FORMAT_WITH_REQUEST = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s"
)
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# =============================================================================
# Request ID Support
# =============================================================================

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Inject the current request ID (or "-") into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True


def get_request_id() -> Optional[str]:
    """Return the request ID of the current context, if any."""
    return _request_id.get()


def generate_request_id(prefix: str = "hw") -> str:
    """Generate a short unique request ID such as ``cal-a1b2c3d4``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def request_context(
    request_id: Optional[str] = None,
    prefix: str = "hw",
) -> Generator[str, None, None]:
    """Bind a request ID to the current context for the duration of the block.

    The ID lives in a ContextVar, so concurrent asyncio tasks each see their
    own value. A fresh ID is generated when none is given.

    Args:
        request_id: ID to bind, or None to generate one.
        prefix: Prefix for generated IDs.

    Yields:
        The request ID in effect.
    """
    rid = request_id or generate_request_id(prefix)
    token = _request_id.set(rid)
    try:
        yield rid
    finally:
        _request_id.reset(token)


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str | Path] = None,
    enable_request_ids: bool = True,
) -> None:
    """Configure the ``hilalwatch`` logger tree.

    Call once at application startup (the CLI does this). Calling it again
    replaces the handlers installed by the previous call.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_file: Optional log file path; enables a rotating file handler.
        enable_request_ids: Include the request ID column in log lines.
    """
    level = LOG_LEVELS.get(log_level.upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    if enable_request_ids:
        log_format = DEFAULT_LOG_FORMAT_WITH_REQUEST
    else:
        log_format = DEFAULT_LOG_FORMAT
    formatter = logging.Formatter(log_format, DEFAULT_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    if enable_request_ids:
        # Filters on handlers also see records propagated from child loggers
        console_handler.addFilter(RequestIdFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=DEFAULT_MAX_BYTES,
            backupCount=DEFAULT_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        if enable_request_ids:
            file_handler.addFilter(RequestIdFilter())
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``hilalwatch`` namespace.

    Modules outside the package (``services.ephemeris...``) are re-rooted so
    they inherit the engine's handlers and level.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_module_level(module_name: str, level: str) -> None:
    """Override the log level of one engine module.

    Example:
        set_module_level("scheduler", "DEBUG")  # per-band scan detail
    """
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")
    logger.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))


# =============================================================================
# Convenience Helpers
# =============================================================================


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    level: int = logging.ERROR,
    include_traceback: bool = True,
) -> None:
    """Log an exception with its type, message and (optionally) traceback."""
    exc_type = type(exc).__name__
    exc_message = str(exc)

    extra = {
        "exception_type": exc_type,
        "exception_message": exc_message,
    }

    if include_traceback:
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        extra["traceback"] = tb
        logger.log(level, f"{message}: [{exc_type}] {exc_message}\n{tb}", extra=extra)
    else:
        logger.log(level, f"{message}: [{exc_type}] {exc_message}", extra=extra)


@contextmanager
def log_timing(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    warn_threshold_sec: Optional[float] = None,
) -> Generator[None, None, None]:
    """Log how long the wrapped block took.

    Emits a WARNING instead when ``warn_threshold_sec`` is set and exceeded.
    """
    start_time = time.perf_counter()
    logger.log(level, f"{operation} started")

    try:
        yield
    finally:
        elapsed = time.perf_counter() - start_time
        extra = {
            "operation": operation,
            "elapsed_seconds": round(elapsed, 3),
        }

        if warn_threshold_sec is not None and elapsed > warn_threshold_sec:
            logger.warning(
                f"{operation} completed in {elapsed:.3f}s "
                f"(exceeded {warn_threshold_sec}s threshold)",
                extra=extra,
            )
        else:
            logger.log(level, f"{operation} completed in {elapsed:.3f}s", extra=extra)
