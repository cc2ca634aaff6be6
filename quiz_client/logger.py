"""
Logging for the quiz client.

One stdout handler hangs off the ``quiz_client`` package logger; module
loggers (``quiz_client.session.controller`` and so on) carry no handler of
their own and reach it through propagation.
"""

import logging
import sys

from quiz_client.config import settings

PACKAGE_LOGGER = "quiz_client"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str | None = None) -> logging.Logger:
    """
    Attach the console handler to the package logger, once.

    Calling again only changes the level, so a new ``LOG_LEVEL`` can be
    applied without duplicating output.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))

    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        package_logger.addHandler(handler)

    return package_logger


def setup_logger(name: str) -> logging.Logger:
    """
    Logger for a module of this package.

    Names outside the package are nested under it so they share its handler.
    """
    if not logging.getLogger(PACKAGE_LOGGER).handlers:
        configure_logging()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


logger = setup_logger(PACKAGE_LOGGER)
