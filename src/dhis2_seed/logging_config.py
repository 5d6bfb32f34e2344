"""
Logging setup for the bootstrap.

Every module logger is a child of the ``dhis2_seed`` package logger,
which owns a single colored console handler. A run can additionally
mirror everything to a plain-text file with :func:`attach_log_file`.
"""

import logging
import os
import sys
from typing import Optional, Union

import colorlog

PACKAGE_LOGGER = "dhis2_seed"
CONSOLE_HANDLER = "dhis2_seed.console"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _console_handler() -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.set_name(CONSOLE_HANDLER)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s[%(levelname)s]%(reset)s "
            "%(blue)s[%(name)s]%(reset)s "
            "%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    return handler


def package_logger() -> logging.Logger:
    """Return the package logger, installing the console handler once."""
    logger = colorlog.getLogger(PACKAGE_LOGGER)
    if not any(h.get_name() == CONSOLE_HANDLER for h in logger.handlers):
        logger.addHandler(_console_handler())
        logger.setLevel(LOG_LEVEL)
        logger.propagate = False
    return logger


def create_logger(
    name: Optional[str] = None, log_level: Optional[Union[int, str]] = None
) -> logging.Logger:
    """
    Create a module logger under the package logger.

    Names outside the package (``__main__`` when a module is run
    directly) are nested under it so they share its handlers.

    :param name: Name of the logger (typically __name__)
    :param log_level: Level for this logger only; inherits when omitted
    :return: Configured logger instance
    """
    package_logger()
    name = name or PACKAGE_LOGGER
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    logger = colorlog.getLogger(name)
    if log_level is not None:
        logger.setLevel(log_level)
    return logger


def attach_log_file(path: str) -> logging.Handler:
    """
    Mirror all package logging to a plain-text file.

    :param path: Log file path; missing parent directories are created
    :return: The file handler, for :func:`detach_log_file`
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    package_logger().addHandler(handler)
    return handler


def detach_log_file(handler: logging.Handler) -> None:
    package_logger().removeHandler(handler)
    handler.close()


def log_exception(logger, e, context=None):
    """
    Log a halted run with the failing state and troubleshooting hints.

    :param logger: Logger instance
    :param e: Exception object
    :param context: Optional additional context for the error
    """
    logger.critical("🚨 BOOTSTRAP HALTED 🚨")
    logger.critical(f"Error Type: {type(e).__name__}")
    logger.critical(f"Error Details: {str(e)}")

    if context:
        logger.critical(f"Context: {context}")

    logger.critical("Troubleshooting:")
    logger.critical("  1. Check the target instance is reachable and empty")
    logger.critical("  2. Verify credentials and base URL")
    logger.critical("  3. Inspect the source files for bad rows")
    logger.critical("  4. Re-run the whole bootstrap against a clean instance")
