"""
Logging configuration.

Sets up the root logger once for the API process and Celery workers so that
module loggers (``logging.getLogger(__name__)``) and service loggers
(``services.<Name>``) share a single format.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger.

    Safe to call more than once; only the level is updated after the
    first call.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
    """
    global _configured

    root = logging.getLogger()
    root.setLevel(level.upper())

    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # SQL echo is controlled by the engine, keep the logger itself quiet
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
