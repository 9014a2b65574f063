"""
Logging setup for the WA Order Bot service.

All modules log through ``logging.getLogger(__name__)``, so configuring the
``wa_order_bot`` logger here covers the whole package. Customer phone numbers
go through ``mask_phone`` before they reach a log line.

Usage:
    from wa_order_bot.logging_config import setup_logging
    setup_logging()  # once, when the app module is imported

Environment variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: INFO)
"""
import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

PACKAGE_LOGGER = "wa_order_bot"

# HTTP clients and the ORM are only interesting when debugging
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "urllib3", "requests", "sqlalchemy.engine")


def _resolve_level(level: Optional[str]) -> str:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    return name if name in LEVEL_NAMES else "INFO"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure stdout logging for the service.

    Args:
        level: Level name; falls back to LOG_LEVEL, then INFO. Unknown
               names also fall back to INFO.
    """
    level_name = _resolve_level(level)
    numeric_level = logging.getLevelName(level_name)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(numeric_level)

    if level_name != "DEBUG":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured at %s level", level_name)


def mask_phone(phone: str) -> str:
    """Hide all but the last four digits of a phone number."""
    if not phone:
        return ""
    visible = phone[-4:] if len(phone) > 4 else ""
    return "*" * (len(phone) - len(visible)) + visible
