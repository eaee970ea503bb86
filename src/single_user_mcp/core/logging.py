"""Logging configuration for the single-user MCP server."""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


def configure_logging(debug: bool | None = None) -> logging.Logger:
    """Configure and return the logger for the application."""
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logger = logging.getLogger("single_user_mcp")

    # Enable debug mode from environment
    if debug is None:
        debug = os.getenv("MCP_DEBUG", "").lower() in ("true", "1", "yes")
    if debug:
        logger.setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")

    return logger


# Initialize logger
logger = configure_logging()
