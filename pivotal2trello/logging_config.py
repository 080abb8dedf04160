"""Centralized logging configuration for pivotal2trello."""

from __future__ import annotations

import logging
import sys

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Configure the ``pivotal2trello`` logger.

    Console output goes to stderr so interactive prompts on stdout stay
    readable. Retries and skipped stories are logged at WARNING, so a long
    import can be audited afterwards with a log file.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR). Unknown names fall back to INFO.
        log_file: Optional path to a log file. Lines written there carry timestamps.

    Returns:
        The configured package logger

    Example:
        >>> setup_logging("DEBUG")  # Log every API decision
        >>> setup_logging("INFO", "import.log")  # Console + file logging
    """
    logger = logging.getLogger("pivotal2trello")
    logger.setLevel(LEVELS.get(level.upper(), logging.INFO))

    # Re-running setup (e.g. from tests) must not stack handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
