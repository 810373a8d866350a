"""Command-line entrypoint: parse flags, run one probe, exit with its status code."""

from __future__ import annotations

import argparse
import asyncio
import functools
import logging
import signal
import sys
from typing import Optional

from .config import (
    InvalidConfigurationError,
    ProbeConfig,
    env_defaults,
    format_duration,
    load_env,
    parse_duration,
)
from .log import setup_logging
from .outcome import STATUS_INVALID_ARGUMENTS, Classification, ProbeOutcome
from .probe import run

log = logging.getLogger("grpc_health_probe")

# Classification -> (level, message template). Templates are filled from _message_fields().
MESSAGES = {
    Classification.CONNECTION_TIMEOUT: (
        logging.ERROR, 'timeout: failed to connect service "{address}" within {connect_timeout}'),
    Classification.CONNECTION_FAILURE: (
        logging.ERROR, 'error: failed to connect service at "{address}": {error}'),
    Classification.PROTOCOL_UNIMPLEMENTED: (
        logging.ERROR, "error: this server does not implement the grpc health protocol (grpc.health.v1.Health)"),
    Classification.RPC_TIMEOUT: (
        logging.ERROR, "timeout: health rpc did not complete within {rpc_timeout}"),
    Classification.RPC_FAILURE: (
        logging.ERROR, "error: health rpc failed: {error}"),
    Classification.UNHEALTHY: (
        logging.WARNING, 'service unhealthy (responded with "{status}")'),
    Classification.HEALTHY: (
        logging.INFO, "status: {status}"),
}


def duration(text: str) -> float:
    """argparse type; errors read "invalid duration value"."""
    return parse_duration(text)


class ProbeArgumentParser(argparse.ArgumentParser):
    """Argument errors exit with the invalid-arguments status instead of argparse's 2."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(STATUS_INVALID_ARGUMENTS, f"error: {message}\n")


def build_parser(defaults: Optional[dict] = None) -> argparse.ArgumentParser:
    d = defaults or env_defaults()
    p = ProbeArgumentParser(
        prog="grpc-health-probe",
        description="Check the status of a service implementing the gRPC health checking protocol.",
        allow_abbrev=False,
    )
    p.add_argument("-addr", "--addr", dest="addr", default=d["addr"],
                   help="(required) tcp host:port to connect")
    p.add_argument("-service", "--service", dest="service", default=d["service"],
                   help='service name to check (default: "")')
    p.add_argument("-user-agent", "--user-agent", dest="user_agent", default=d["user_agent"],
                   help="user-agent header value of health check requests")
    p.add_argument("-connect-timeout", "--connect-timeout", dest="connect_timeout", type=duration,
                   default=d["connect_timeout"], help="timeout for establishing connection (e.g. 1s, 250ms)")
    p.add_argument("-rpc-timeout", "--rpc-timeout", dest="rpc_timeout", type=duration,
                   default=d["rpc_timeout"], help="timeout for health check rpc (e.g. 1s, 250ms)")
    p.add_argument("-v", "--verbose", dest="verbose", action="store_true", help="verbose logs")
    return p


def config_from_args(args: argparse.Namespace) -> ProbeConfig:
    """Build and validate the probe configuration from parsed flags."""
    return ProbeConfig(
        address=(args.addr or "").strip(),
        service=args.service,
        user_agent=args.user_agent,
        connect_timeout=args.connect_timeout,
        rpc_timeout=args.rpc_timeout,
        verbose=args.verbose,
    ).validate()


async def run_with_signals(config: ProbeConfig) -> ProbeOutcome:
    """Run the probe with SIGINT/SIGTERM mapped onto its cancellation event."""
    loop = asyncio.get_running_loop()
    cancel = asyncio.Event()

    def _cancel(sig: signal.Signals) -> None:
        if not cancel.is_set():
            log.warning("cancellation received")
            log.debug("signal %s", sig.name)
            cancel.set()

    installed = []
    previous = {}
    for sig_ in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig_, functools.partial(_cancel, sig_))
            installed.append(sig_)
        except NotImplementedError:
            previous[sig_] = signal.signal(
                sig_, lambda s, _frame: loop.call_soon_threadsafe(_cancel, signal.Signals(s)))

    try:
        return await run(config, cancel=cancel)
    finally:
        for sig_ in installed:
            loop.remove_signal_handler(sig_)
        for sig_, handler in previous.items():
            signal.signal(sig_, handler)


def _message_fields(config: ProbeConfig, outcome: ProbeOutcome) -> dict:
    return {
        "address": config.address,
        "connect_timeout": format_duration(config.connect_timeout),
        "rpc_timeout": format_duration(config.rpc_timeout),
        "status": outcome.status or "",
        "error": outcome.error or "",
    }


def report(config: ProbeConfig, outcome: ProbeOutcome) -> None:
    """Log the human-readable line for the outcome."""
    level, template = MESSAGES[outcome.classification]
    log.log(level, template.format(**_message_fields(config, outcome)))


def main(argv: Optional[list] = None) -> int:
    env_file = load_env()
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)
    if env_file:
        log.debug("loaded environment from %s", env_file)

    try:
        config = config_from_args(args)
    except InvalidConfigurationError as e:
        log.error("error: %s", e)
        return STATUS_INVALID_ARGUMENTS

    if config.verbose:
        log.debug("parsed options:")
        log.debug(
            "> remoteUrl=%s conn-timeout=%s rpc-timeout=%s",
            config.address, format_duration(config.connect_timeout), format_duration(config.rpc_timeout),
        )

    outcome = asyncio.run(run_with_signals(config))
    report(config, outcome)
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
