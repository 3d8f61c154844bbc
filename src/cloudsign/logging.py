"""Logging setup for command-line entry points.

Library modules only create module-level loggers; configuring handlers is
left to whoever runs the process.
"""

import logging
from typing import Optional

from cloudsign.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from settings.

    Args:
        level: Explicit level name; defaults to DEBUG in debug mode,
            otherwise the configured LOG_LEVEL
    """
    settings = get_settings()
    if level is None:
        level = "DEBUG" if settings.debug else settings.log_level

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # SDK transports are chatty at DEBUG
    for name in ("botocore", "urllib3", "google.auth"):
        logging.getLogger(name).setLevel(logging.WARNING)
