"""
Logging utilities built on loguru.

Every module obtains its logger through ``get_logger(__name__)`` so the
module name shows up in each record. ``configure_logging`` installs the
sinks once at program start (stderr and an optional log file).
"""

import sys
import traceback

from loguru import logger

from devforward.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

FILE_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]} - {message}"
)

# Records emitted before configure_logging() still need the "name" extra.
logger.configure(extra={"name": "devforward"})


def _loguru_level(level: LogLevel | str) -> str:
    level = LogLevel(level)
    match level:
        case LogLevel.FULL:
            return "TRACE"
        case LogLevel.DEBUG:
            return "DEBUG"
        case LogLevel.WARNING:
            return "WARNING"
        case _:
            return "INFO"


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_file: str | None = None,
) -> None:
    """
    Install the stderr sink and, optionally, a file sink.

    Args:
        level: Verbosity level. ``full`` also enables loguru's variable
            diagnostics in tracebacks.
        log_file: Path of a log file to append to. None disables file logging.
    """
    loguru_level = _loguru_level(level)
    full = LogLevel(level) == LogLevel.FULL

    logger.remove()
    logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )
    if log_file:
        logger.add(
            log_file,
            level=loguru_level,
            format=FILE_LOG_FORMAT,
            backtrace=full,
            diagnose=full,
            enqueue=True,
        )


def get_logger(name: str):
    """Return a logger bound to the given module name."""
    return logger.bind(name=name)


def format_traceback(exc: BaseException) -> str:
    """Render an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
