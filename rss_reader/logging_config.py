"""Logging setup for rss_reader.

Logs go to stderr so the STDIO transport keeps stdout for protocol traffic.
"""

import logging
import sys
from typing import Optional

from rss_reader.config import ServerConfig

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger("rss_reader")


def setup_logging(config: Optional[ServerConfig] = None) -> logging.Logger:
    """Configure the package logger.

    Safe to call more than once; the handler is only attached the first time.

    Args:
        config: Server configuration supplying the log level

    Returns:
        The configured package logger
    """
    level_name = config.log_level if config else "INFO"
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logger.setLevel(level)

    if not any(getattr(h, "_rss_reader", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._rss_reader = True
        logger.addHandler(handler)

    logger.propagate = False
    return logger
