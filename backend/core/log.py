"""
log.py — Console logger setup shared by core modules and routes.
"""

import logging
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()


def setup_logger(name: str = "schoolboard") -> logging.Logger:
    """Return a named logger writing to the console."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    # Repeated imports must not stack handlers.
    if logger.hasHandlers():
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(console_handler)
    return logger
