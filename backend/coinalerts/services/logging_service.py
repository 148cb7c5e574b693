"""Logging setup driven by the `logging` section of the configuration."""

import logging
from typing import Optional

from .config import ConfigService, config_service

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Third-party loggers that are noisy at DEBUG
QUIET_LOGGERS = ("aiohttp.access", "asyncio")


def configure_logging(config: Optional[ConfigService] = None) -> int:
    """Apply the configured level and format to the root logger.

    Args:
        config: Config service to read from. Defaults to the global instance.

    Returns:
        The numeric log level that was applied.
    """
    config = config or config_service
    level_name = str(config.get("logging.level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = config.get("logging.format") or DEFAULT_LOG_FORMAT

    logging.basicConfig(level=level, format=log_format, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging configured at {level_name}")
    return level
