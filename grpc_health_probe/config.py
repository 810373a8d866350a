"""Probe configuration: environment-backed defaults, duration parsing and validation."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

DEFAULT_USER_AGENT = "grpc-health-probe"
DEFAULT_CONNECT_TIMEOUT = 1.0
DEFAULT_RPC_TIMEOUT = 1.0


class InvalidConfigurationError(ValueError):
    """Probe input rejected before any network activity."""
    pass


# ---------- Durations (Go syntax: 500ms, 1.5s, 1m30s) ----------

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # micro sign
    "μs": 1e-6,  # greek mu
    "ms": 1e-3,
    "s":  1.0,
    "m":  60.0,
    "h":  3600.0,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_BARE_NUMBER = re.compile(r"[-+]?(\d+(?:\.\d*)?|\.\d+)")


def parse_duration(text: str) -> float:
    """Parse a duration string into seconds.

    Accepts Go ``time.ParseDuration`` syntax (``"300ms"``, ``"-1.5h"``,
    ``"2h45m"``) as well as a bare number, which is read as seconds.

    Raises:
        InvalidConfigurationError: when the string is not a duration.
    """
    raw = (text or "").strip()
    if not raw:
        raise InvalidConfigurationError("invalid duration: empty string")
    if _BARE_NUMBER.fullmatch(raw):
        return float(raw)

    sign = 1.0
    body = raw
    if body[0] in "+-":
        sign = -1.0 if body[0] == "-" else 1.0
        body = body[1:]

    total = 0.0
    pos = 0
    while pos < len(body):
        m = _COMPONENT.match(body, pos)
        if m is None:
            raise InvalidConfigurationError(f"invalid duration: {text!r}")
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()
    if pos == 0:
        raise InvalidConfigurationError(f"invalid duration: {text!r}")
    return sign * total


def _fixed(value: float, places: int) -> str:
    """Fixed-point with trailing zeros dropped (Go keeps every significant nanosecond digit)."""
    return f"{value:.{places}f}".rstrip("0").rstrip(".")


def format_duration(seconds: float) -> str:
    """Render seconds the way Go prints a ``time.Duration`` (``1s``, ``250ms``, ``1m30s``)."""
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    s = abs(seconds)
    if s < 1e-6:
        return f"{sign}{round(s * 1e9):d}ns"
    if s < 1e-3:
        return f"{sign}{_fixed(s * 1e6, 3)}µs"
    if s < 1:
        return f"{sign}{_fixed(s * 1e3, 6)}ms"

    hours, rem = divmod(s, 3600)
    minutes, secs = divmod(rem, 60)
    out = sign
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    return out + f"{_fixed(secs, 9)}s"


# ---------- Environment ----------

def load_env() -> Optional[str]:
    """Load a local .env file without overriding variables already set by the shell.

    Returns:
        Path of the loaded file, or None when there is none.
    """
    path = find_dotenv(usecwd=True)
    if not path:
        return None
    load_dotenv(path, override=False)
    return path


def _first_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment value among keys, else default."""
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return default


def env_defaults() -> dict:
    """Flag defaults, overridable through HEALTH_PROBE_* variables."""
    return {
        "addr": _first_env("HEALTH_PROBE_ADDR", default=""),
        "service": _first_env("HEALTH_PROBE_SERVICE", default=""),
        "user_agent": _first_env("HEALTH_PROBE_USER_AGENT", default=DEFAULT_USER_AGENT),
        "connect_timeout": _first_env("HEALTH_PROBE_CONNECT_TIMEOUT", default="1s"),
        "rpc_timeout": _first_env("HEALTH_PROBE_RPC_TIMEOUT", default="1s"),
    }


# ---------- Probe configuration ----------

@dataclass(frozen=True)
class ProbeConfig:
    """Immutable input of one probe run. Timeouts are in seconds."""
    address: str
    service: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    verbose: bool = False

    def validate(self) -> "ProbeConfig":
        """Return self if usable, else raise InvalidConfigurationError."""
        if not self.address:
            raise InvalidConfigurationError("--addr not specified")
        if self.connect_timeout <= 0:
            raise InvalidConfigurationError(
                f"--connect-timeout must be greater than zero (specified: {format_duration(self.connect_timeout)})"
            )
        if self.rpc_timeout <= 0:
            raise InvalidConfigurationError(
                f"--rpc-timeout must be greater than zero (specified: {format_duration(self.rpc_timeout)})"
            )
        return self


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_RPC_TIMEOUT",
    "DEFAULT_USER_AGENT",
    "InvalidConfigurationError",
    "ProbeConfig",
    "env_defaults",
    "format_duration",
    "load_env",
    "parse_duration",
]
