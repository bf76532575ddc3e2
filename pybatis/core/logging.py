import logging
import sys
from typing import List, Optional

LOGGER_NAME = "pybatis"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name when writing to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if not color:
            return super().format(record)

        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a pybatis logger.

    Args:
        name: Optional child name, e.g. "mapper" -> "pybatis.mapper"
    """
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)


def configure_logging(
    level: str = "INFO",
    fmt: Optional[str] = None,
    custom_formatter: Optional[logging.Formatter] = None,
    custom_handlers: Optional[List[logging.Handler]] = None,
):
    """
    Configure the root logger.

    Replaces existing root handlers. Custom handlers are used as given;
    otherwise a stderr handler is installed, colored when attached to a TTY.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    log_level = getattr(logging, str(level).upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if custom_handlers:
        handlers = list(custom_handlers)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handlers = [handler]

    for handler in handlers:
        if custom_formatter is not None:
            handler.setFormatter(custom_formatter)
        elif handler.formatter is None:
            stream = getattr(handler, "stream", None)
            if stream is not None and hasattr(stream, "isatty") and stream.isatty():
                handler.setFormatter(ColoredFormatter(fmt or DEFAULT_FORMAT))
            else:
                handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
        root_logger.addHandler(handler)

    get_logger().setLevel(log_level)
