import logging
from typing import Optional, Union

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: Optional[Union[str, int]] = None) -> int:
    """
    Send application logs to stderr at settings.LOG_LEVEL.

    An unknown level name falls back to INFO. Returns the level in effect.
    """
    if isinstance(level, int):
        resolved = level
    else:
        resolved = logging.getLevelName((level or settings.LOG_LEVEL).upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logging.basicConfig(level=resolved, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    logging.getLogger("app").setLevel(resolved)
    return resolved
