"""JSON log output for the long-running scraper."""

import logging
import sys
from typing import TextIO

from pythonjsonlogger.json import JsonFormatter

_handler: logging.Handler | None = None


def configure_logging(level: str | int = "INFO", stream: TextIO | None = None) -> logging.Logger:
    """Configure the root logger with a single JSON handler.

    Calling again replaces the handler rather than adding another one.
    """
    global _handler

    logger = logging.getLogger()
    logger.setLevel(level)

    if _handler is not None:
        logger.removeHandler(_handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    formatter = JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        timestamp=True,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    _handler = handler

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger
