"""Internal logging utilities."""

import logging

# Package logger; module loggers propagate to it
logger = logging.getLogger("gcpotel")

# Default to WARNING to avoid noise
logger.setLevel(logging.WARNING)


def log_internal_error(operation: str, error: BaseException) -> None:
    """Log an internal exporter error without raising to user code."""
    logger.warning("gcpotel internal error in %s: %s", operation, error, exc_info=error)
