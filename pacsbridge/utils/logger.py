"""
Logging for PACS Bridge.

All output goes through loguru. pynetdicom and httpx log through the standard
library; ``InterceptHandler`` routes their records into loguru, filtered by a
separate minimum level (``library_log_level``) so PDU dumps stay out of normal runs.
"""

import inspect
import logging
import sys
from pathlib import Path

from loguru import logger as _logger

from ..settings import settings

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Standard library loggers of the networking stack
LIBRARY_LOGGERS = ("pynetdicom", "httpx", "httpcore")


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames inside the logging module so loguru reports the real caller
        frame, depth = inspect.currentframe(), 0
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _route_library_logs(library_level: str) -> None:
    handler = InterceptHandler()
    logging.basicConfig(handlers=[handler], level=0, force=True)
    for name in LIBRARY_LOGGERS:
        lib_logger = logging.getLogger(name)
        lib_logger.handlers = [handler]
        lib_logger.propagate = False
        lib_logger.setLevel(library_level.upper())


def setup_logging(
    level: str = "INFO",
    format: str | None = None,
    log_file: str | Path | None = None,
    rotation: str = "20 MB",
    retention: str = "1 week",
    serialize: bool = False,
    library_level: str = "WARNING",
) -> None:
    """
    Configure loguru sinks and standard library interception.

    Args:
        level: Minimum level for PACS Bridge messages
        format: loguru format string; ``DEFAULT_FORMAT`` if None
        log_file: Optional path of a rotating log file
        rotation: When to rotate the log file (size or time)
        retention: How long to keep rotated files
        serialize: Write the log file as JSON lines
        library_level: Minimum level for pynetdicom and httpx records
    """
    fmt = format or DEFAULT_FORMAT

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=level,
        format=fmt,
        colorize=True,
        backtrace=True,
        diagnose=True,
    )

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Association threads and the event loop write concurrently
        _logger.add(
            str(log_path),
            level=level,
            format=fmt,
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=serialize,
            enqueue=True,
        )

    _route_library_logs(library_level)


setup_logging(
    level=settings.log_level,
    format=settings.log_format,
    log_file=settings.get_log_dir() / "pacsbridge.log" if settings.log_to_file else None,
    rotation=settings.log_rotation,
    retention=settings.log_retention,
    library_level=settings.library_log_level,
)

logger = _logger
