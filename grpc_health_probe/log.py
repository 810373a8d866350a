"""Console logging for the probe (coloredlogs on stderr)."""

from __future__ import annotations

import logging
import os

import coloredlogs

LOGGER_NAME = "grpc_health_probe"

# Probe output mirrors a flagless logger: the message only, no timestamps.
LOG_FORMAT = os.environ.get("LOG_FORMAT", "%(message)s")


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Install the console handler and return the probe logger.

    Args:
        verbose: Force DEBUG so stage timings and parsed options are shown;
            otherwise the level is ``$LOGLEVEL`` or INFO.

    Returns:
        The ``grpc_health_probe`` logger.
    """
    effective = "DEBUG" if verbose else os.environ.get("LOGLEVEL", "INFO").upper()
    coloredlogs.install(
        level=effective,
        logger=logging.getLogger(LOGGER_NAME),
        fmt=LOG_FORMAT,
        level_styles={
            "debug":    {"color": "blue"},
            "info":     {},
            "warning":  {"color": "yellow"},
            "error":    {"color": "red"},
            "critical": {"color": "red", "bold": True},
        },
        field_styles={"name": {"color": "blue"}},
    )
    return logging.getLogger(LOGGER_NAME)


__all__ = ["LOGGER_NAME", "setup_logging"]
