"""
Logging utilities for KohakuNet.

All modules log through loguru with a bound module name:

    from kohakunet.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info(f"Acquired lease {lease.subnet}")

configure_logging() is called once by the entry point (CLI or an embedding
agent) to install the sinks for the configured LogLevel.
"""

import sys
import traceback

from loguru import logger as _logger

from kohakunet.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# Records logged before any get_logger() binding still need extra[name]
_logger.configure(extra={"name": "kohakunet"})


def get_logger(name: str):
    """Get a logger bound to a module name."""
    return _logger.bind(name=name)


def _loguru_level(level: LogLevel) -> str:
    match level:
        case LogLevel.FULL:
            return "TRACE"
        case LogLevel.DEBUG:
            return "DEBUG"
        case LogLevel.INFO:
            return "INFO"
        case LogLevel.WARNING:
            return "WARNING"
    return "INFO"


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str = "") -> None:
    """
    Install loguru sinks for the given verbosity.

    Args:
        level: KohakuNet log level.
        log_file: Optional path of an additional rotating log file.
    """
    loguru_level = _loguru_level(level)
    full = level == LogLevel.FULL

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )
    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )


def format_traceback(exc: BaseException) -> str:
    """Format an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
