import logging
import sys
from typing import Optional, TextIO

ROOT_LOGGER = "hdrtmo"
LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO, stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attaches one stream handler to the library logger. Calling it again
    only updates the level. Windowed hosts may run without stdout, so the
    handler falls back to stderr and is skipped when neither exists.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    target = stream or sys.stdout or sys.stderr
    if target is None:
        logger.addHandler(logging.NullHandler())
        return logger

    handler = logging.StreamHandler(target)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Logger below the library root. Module names are used as is,
    short names like "perf" are nested under it.
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
