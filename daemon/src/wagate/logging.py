"""Logging configuration for wagate."""

import logging
from pathlib import Path

from wagate.config import Config

# aiohttp logs one line per request here
ACCESS_LOGGER = "aiohttp.access"

# Module-level logger cache
_logger: logging.Logger | None = None


def setup_logging(config: Config) -> logging.Logger:
    """Set up logging based on configuration.

    Args:
        config: Configuration object with log settings.

    Returns:
        Configured logger instance.
    """
    global _logger

    # Idempotent
    if _logger is not None:
        return _logger

    logger = logging.getLogger("wagate")
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    # 2026-01-27 10:30:45 [INFO] message
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    formatter.datefmt = "%Y-%m-%d %H:%M:%S"

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    # Status server access lines only at DEBUG
    level = logger.level
    logging.getLogger(ACCESS_LOGGER).setLevel(
        logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    )

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is not None:
        _logger.handlers.clear()
        _logger.propagate = True
        _logger = None
    logging.getLogger(ACCESS_LOGGER).setLevel(logging.NOTSET)
