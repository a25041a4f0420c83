"""
Logging configuration for the command line tool.

Library code logs through the standard ``logging`` module.  The command line
entry point calls :py:func:`setup_logging` to send those records to stderr,
rendered by structlog's console renderer.
"""

import logging
import logging.config
from typing import Any

import structlog


pre_chain = [
    structlog.stdlib.add_log_level,
]


def logging_config(level: int = logging.INFO) -> dict[str, Any]:
    """
    Build the ``logging.config.dictConfig`` dictionary for ldapload.

    Keyword Args:
        level: the level for the ``ldapload`` loggers

    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "root": {
            "handlers": ["structlog_console"],
            "level": "WARNING",
        },
        "loggers": {
            "ldapload": {
                "handlers": ["structlog_console"],
                "level": logging.getLevelName(level),
                "propagate": False,
            },
        },
        "handlers": {
            "structlog_console": {
                "level": "DEBUG",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "structlog",
            },
        },
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.dev.ConsoleRenderer(colors=False),
                "foreign_pre_chain": pre_chain,
            },
        },
    }


def setup_logging(verbose: int = 0) -> None:
    """
    Configure logging for a command line run.

    Keyword Args:
        verbose: 0 logs at INFO, anything higher at DEBUG

    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.config.dictConfig(logging_config(level))
