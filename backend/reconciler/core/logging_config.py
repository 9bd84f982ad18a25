"""
Logging setup

Every module logs through ``logging.getLogger(__name__)``; this module only
configures the root handler once per process (API server, scheduler, scripts).
"""
import logging

from reconciler.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger

    Args:
        level: level name, defaults to ``settings.LOG_LEVEL``
    """
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)
