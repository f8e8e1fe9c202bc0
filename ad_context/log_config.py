"""Optional logging setup for applications embedding ad_context.

The library itself only emits records through ``logging.getLogger(__name__)``;
nothing is configured unless the application calls setup_logging().
"""

import logging
from typing import Optional

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_console_handler: Optional[logging.Handler] = None


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a console handler to the ``ad_context`` logger.

    Calling it again replaces the previously installed handler.
    Unknown level names fall back to INFO.
    """
    global _console_handler

    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    log_level = getattr(logging, level_str)

    logger = logging.getLogger("ad_context")
    if _console_handler and _console_handler in logger.handlers:
        logger.removeHandler(_console_handler)

    handler = logging.StreamHandler()
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))
    _console_handler = handler

    logger.setLevel(log_level)
    logger.addHandler(handler)
    return logger
