"""Probe classifications, exit codes and the per-run outcome record."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


# ---------- Exit codes consumed by supervisors ----------

STATUS_HEALTHY = 0
STATUS_INVALID_ARGUMENTS = 1
STATUS_CONNECTION_FAILURE = 2
STATUS_RPC_FAILURE = 3
STATUS_UNHEALTHY = 4


class Classification(str, Enum):
    """Terminal states of one probe run."""

    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    CONNECTION_FAILURE = "CONNECTION_FAILURE"
    RPC_TIMEOUT = "RPC_TIMEOUT"
    RPC_FAILURE = "RPC_FAILURE"
    PROTOCOL_UNIMPLEMENTED = "PROTOCOL_UNIMPLEMENTED"
    UNHEALTHY = "UNHEALTHY"
    HEALTHY = "HEALTHY"

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self]


EXIT_CODES = {
    Classification.HEALTHY:                STATUS_HEALTHY,
    Classification.INVALID_CONFIGURATION:  STATUS_INVALID_ARGUMENTS,
    Classification.CONNECTION_TIMEOUT:     STATUS_CONNECTION_FAILURE,
    Classification.CONNECTION_FAILURE:     STATUS_CONNECTION_FAILURE,
    Classification.RPC_TIMEOUT:            STATUS_RPC_FAILURE,
    Classification.RPC_FAILURE:            STATUS_RPC_FAILURE,
    Classification.PROTOCOL_UNIMPLEMENTED: STATUS_RPC_FAILURE,
    Classification.UNHEALTHY:              STATUS_UNHEALTHY,
}


@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of a single probe run.

    ``connect_duration`` is only set once the channel became ready;
    ``rpc_duration`` and ``status`` only once the Check RPC returned a response.
    Durations are in seconds.
    """
    classification: Classification
    connect_duration: Optional[float] = None
    rpc_duration: Optional[float] = None
    status: Optional[str] = None
    error: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return self.classification.exit_code


__all__ = [
    "Classification",
    "EXIT_CODES",
    "ProbeOutcome",
    "STATUS_HEALTHY",
    "STATUS_INVALID_ARGUMENTS",
    "STATUS_CONNECTION_FAILURE",
    "STATUS_RPC_FAILURE",
    "STATUS_UNHEALTHY",
]
