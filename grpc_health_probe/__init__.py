"""
One-shot probe for services implementing the gRPC health checking protocol.

- ``run(config)`` performs a single connect + Check and returns a ProbeOutcome.
- ``main()`` is the ``grpc-health-probe`` console entrypoint; its exit code
  encodes the outcome classification.
"""
from __future__ import annotations

from .config import InvalidConfigurationError, ProbeConfig, format_duration, parse_duration
from .log import setup_logging
from .outcome import Classification, ProbeOutcome
from .probe import run

__version__ = "0.1.0"

__all__ = [
    "Classification",
    "InvalidConfigurationError",
    "ProbeConfig",
    "ProbeOutcome",
    "format_duration",
    "parse_duration",
    "run",
    "setup_logging",
]
