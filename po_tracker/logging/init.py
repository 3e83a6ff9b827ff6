from __future__ import annotations

import logging
import sys

"""Logging initialization with labeled prefixes.

Every line written by the application logger starts with a label
(INFO|WARN|ERROR|SUMMARY ...) so CLI output can be grepped and asserted on.
A custom SUMMARY level sits between INFO and WARNING for the one-line
import summary.
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
    "LOGGER_NAME",
]

LOGGER_NAME = "po_tracker"

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """Formatter producing ``LABEL message`` lines.

    Tracebacks attached with ``logger.exception`` are only printed when
    ``show_tracebacks`` is set (debug mode); otherwise the line stays single.
    """

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def __init__(self, show_tracebacks: bool = False) -> None:
        super().__init__()
        self.show_tracebacks = show_tracebacks

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        line = f"{label} {record.getMessage()}"
        if self.show_tracebacks and record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _apply_level(logger: logging.Logger, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)
    for h in logger.handlers:
        h.setLevel(level)
        if isinstance(h.formatter, LabeledFormatter):
            h.formatter.show_tracebacks = debug


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure the application logger (idempotent).

    Output goes to stdout; child loggers (``po_tracker.*`` via
    ``logging.getLogger(__name__)``) propagate into it.

    Args:
        debug: lower logger and handler level to DEBUG and print tracebacks

    Returns:
        Configured logger instance for the application
    """
    global _logger

    if _logger is not None:
        _apply_level(_logger, debug)
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(LOGGER_NAME)
    # 別経路で付いた handler は外す (二重出力防止)
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    _apply_level(logger, debug)

    # root へ流すと二重出力になる
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str) -> None:
    """Log a message at SUMMARY level."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers[:]:
            _logger.removeHandler(handler)
    _logger = None
