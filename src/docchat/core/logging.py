"""
Logging Setup

Installs a single console handler for the `docchat` loggers via
`logging.config.dictConfig`. Module loggers are plain
`logging.getLogger("docchat.<component>")` instances.
"""

from __future__ import annotations

import logging
import logging.config


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the service.

    Parameters
    ----------
    level : str
        Log level name, e.g. "INFO" or "DEBUG".
    """
    loglevel = logging.getLevelName(level.upper())
    if not isinstance(loglevel, int):
        loglevel = logging.INFO

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": loglevel,
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": loglevel,
        },
    }

    logging.config.dictConfig(logging_config)

    # Request-level httpx logs are noise unless debugging
    debug_mode = loglevel <= logging.DEBUG
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug_mode else logging.WARNING)
