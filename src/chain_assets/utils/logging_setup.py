"""Logging configuration helper."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("aiohttp.access", "asyncio", "urllib3")


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for scripts and services."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    logging.getLogger("chain_assets").setLevel(numeric_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
