"""Logging configuration for the proxy."""

import logging
import sys

LOGGER_NAME = "anthropic-proxy"


def setup_logging(debug: bool = False, verbose: bool = False) -> logging.Logger:
    """Set up logging with proper handlers and formatters.

    ``debug`` and ``verbose`` both lower the level to DEBUG; ``verbose``
    additionally makes the request handler dump full payloads.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if (debug or verbose) else logging.INFO
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate to root so test capture and uvicorn handlers still see records
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
