"""Logging setup shared by the API process and scripts."""

import logging
import sys

from edubridge.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the root handler once and return the application logger."""
    global _configured
    resolved = (level or settings.log_level or "INFO").upper()

    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(resolved)
        # uvicorn access lines duplicate the request middleware output
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        if not settings.sql_debug:
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        _configured = True

    logger = logging.getLogger("edubridge")
    logger.setLevel(resolved)
    return logger
