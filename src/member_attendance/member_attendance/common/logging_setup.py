from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Root of the package's logger tree, whatever prefix the package was imported under.
PACKAGE_LOGGER = __name__.rsplit(".common.", 1)[0]


def configure_logging(level: str = "INFO", *, logger_name: Optional[str] = None) -> logging.Logger:
    """Attach a console handler to the package logger.

    Safe to call more than once: existing handlers are replaced.
    """
    logger = logging.getLogger(logger_name or PACKAGE_LOGGER)
    logger.handlers.clear()
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
