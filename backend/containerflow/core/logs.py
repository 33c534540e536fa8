"""
Logging setup for the desktop shell entry point
"""

import logging
import sys

from containerflow.core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging to stdout

    Args:
        level: Log level name. If None, uses Settings.log_level
    """
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # asyncssh logs every channel open at INFO; one per Docker API call over the tunnel
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
