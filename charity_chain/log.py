"""
Logging Setup

Library modules log through logging.getLogger(__name__) and never
configure handlers themselves. Entry points call setup_logging once with
the number of -v flags; repeated calls adjust the level without stacking
a second stderr handler.
"""

import logging
import sys
from typing import Optional


_LEVELS_BY_VERBOSE = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


def setup_logging(verbose_count: int = 0, logger_name: Optional[str] = "charity_chain",
                  default_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger from a -v count.

    -v  -> INFO
    -vv -> DEBUG
    default -> default_level, or WARNING

    Calling it again adjusts the level without adding another handler.
    """
    if verbose_count == 0 and default_level:
        level = logging.getLevelName(default_level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {default_level}")
    else:
        level = _LEVELS_BY_VERBOSE.get(verbose_count, logging.DEBUG)

    logger = logging.getLogger(logger_name or "")
    logger.setLevel(level)

    already_configured = any(getattr(h, "_charity_chain_handler", False) for h in logger.handlers)
    if not already_configured:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler._charity_chain_handler = True  # type: ignore[attr-defined]
        fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%H:%M:%S"))
        logger.addHandler(handler)

    return logger
