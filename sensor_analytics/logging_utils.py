"""Logging setup for the compute service."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Configure the package logger with a stdout handler.

    Safe to call more than once; the handler is only attached the first time.
    """
    logger = logging.getLogger("sensor_analytics")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger

