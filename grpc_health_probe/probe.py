"""Async gRPC health probe: connect under a deadline, Check under a deadline, classify."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import grpc
from grpc_health.v1 import health_pb2, health_pb2_grpc

from .config import ProbeConfig, format_duration
from .outcome import Classification, ProbeOutcome

log = logging.getLogger("grpc_health_probe.probe")

ChannelFactory = Callable[[ProbeConfig], Any]

# Extra headroom over the RPC deadline; the deadline itself is enforced by gRPC.
RPC_DEADLINE_GRACE = 0.5

# RPC status codes with a dedicated classification; everything else is RPC_FAILURE.
RPC_CODE_CLASSIFICATION = {
    grpc.StatusCode.UNIMPLEMENTED:     Classification.PROTOCOL_UNIMPLEMENTED,
    grpc.StatusCode.DEADLINE_EXCEEDED: Classification.RPC_TIMEOUT,
}

_TERMINAL_STATES = (grpc.ChannelConnectivity.TRANSIENT_FAILURE, grpc.ChannelConnectivity.SHUTDOWN)


class ChannelConnectError(Exception):
    """Channel reached a failed connectivity state before becoming READY."""
    pass


class ProbeCancelledError(Exception):
    """Cancellation was requested while a stage was in flight."""
    pass


def insecure_channel(config: ProbeConfig) -> grpc.aio.Channel:
    """Plaintext channel tagged with the configured user agent."""
    return grpc.aio.insecure_channel(
        config.address,
        options=[("grpc.primary_user_agent", config.user_agent)],
    )


async def _guarded(aw: Awaitable, timeout: Optional[float], cancel: Optional[asyncio.Event]) -> Any:
    """Await ``aw`` until it finishes, ``timeout`` elapses or ``cancel`` is set.

    Raises:
        asyncio.TimeoutError: the bound elapsed first.
        ProbeCancelledError: cancellation was requested first.
        Exception: whatever ``aw`` raised.
    """
    task = asyncio.ensure_future(aw)
    watched = {task}
    waiter = None
    if cancel is not None:
        waiter = asyncio.ensure_future(cancel.wait())
        watched.add(waiter)
    try:
        done, _ = await asyncio.wait(watched, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [f for f in watched if not f.done()]
        for f in pending:
            f.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        return task.result()
    if waiter is not None and waiter in done:
        raise ProbeCancelledError("cancellation received")
    raise asyncio.TimeoutError()


async def wait_for_ready(channel: Any) -> None:
    """Drive the channel from IDLE to READY; a failed attempt is terminal (no retry)."""
    state = channel.get_state(try_to_connect=True)
    while state != grpc.ChannelConnectivity.READY:
        if state in _TERMINAL_STATES:
            raise ChannelConnectError(f"channel entered {state.name}")
        await channel.wait_for_state_change(state)
        state = channel.get_state(try_to_connect=True)


def _describe_rpc_error(exc: grpc.RpcError) -> tuple[grpc.StatusCode, str]:
    code = exc.code() if callable(getattr(exc, "code", None)) else grpc.StatusCode.UNKNOWN
    details = exc.details() if callable(getattr(exc, "details", None)) else str(exc)
    return code, f"rpc error: code = {code.name} desc = {details}"


def _status_name(response: health_pb2.HealthCheckResponse) -> str:
    try:
        return health_pb2.HealthCheckResponse.ServingStatus.Name(response.status)
    except ValueError:
        return str(response.status)


async def run(
        config: ProbeConfig,
        cancel: Optional[asyncio.Event] = None,
        channel_factory: ChannelFactory = insecure_channel,
) -> ProbeOutcome:
    """Run a single gRPC health check and classify the result.

    Args:
        config: Validated probe configuration.
        cancel: Event set by the signal handler; aborts the stage in flight.
        channel_factory: Builds the channel for ``config`` (tests swap in fakes).

    Returns:
        Exactly one ProbeOutcome. Stage failures are folded into the outcome
        rather than raised.
    """
    log.debug("establishing connection")
    async with channel_factory(config) as channel:
        # ---- Stage 1: connect ----
        conn_start = time.perf_counter()
        try:
            await _guarded(wait_for_ready(channel), config.connect_timeout, cancel)
        except asyncio.TimeoutError:
            return ProbeOutcome(
                Classification.CONNECTION_TIMEOUT,
                error=f"no connection within {format_duration(config.connect_timeout)}",
            )
        except Exception as e:
            return ProbeOutcome(Classification.CONNECTION_FAILURE, error=str(e) or type(e).__name__)
        connect_duration = time.perf_counter() - conn_start
        log.debug("connection established (took %s)", format_duration(connect_duration))

        # ---- Stage 2: Check RPC ----
        stub = health_pb2_grpc.HealthStub(channel)
        request = health_pb2.HealthCheckRequest(service=config.service)
        rpc_start = time.perf_counter()
        try:
            response = await _guarded(
                stub.Check(request, timeout=config.rpc_timeout),
                config.rpc_timeout + RPC_DEADLINE_GRACE,
                cancel,
            )
        except asyncio.TimeoutError:
            return ProbeOutcome(
                Classification.RPC_TIMEOUT,
                connect_duration=connect_duration,
                error=f"no response within {format_duration(config.rpc_timeout)}",
            )
        except grpc.RpcError as e:
            code, detail = _describe_rpc_error(e)
            return ProbeOutcome(
                RPC_CODE_CLASSIFICATION.get(code, Classification.RPC_FAILURE),
                connect_duration=connect_duration,
                error=detail,
            )
        except Exception as e:
            return ProbeOutcome(
                Classification.RPC_FAILURE,
                connect_duration=connect_duration,
                error=str(e) or type(e).__name__,
            )
        rpc_duration = time.perf_counter() - rpc_start

    log.debug("%s", response)
    status = _status_name(response)
    log.debug("time elapsed: connect=%s rpc=%s", format_duration(connect_duration), format_duration(rpc_duration))
    healthy = response.status == health_pb2.HealthCheckResponse.SERVING
    return ProbeOutcome(
        Classification.HEALTHY if healthy else Classification.UNHEALTHY,
        connect_duration=connect_duration,
        rpc_duration=rpc_duration,
        status=status,
    )


__all__ = [
    "ChannelConnectError",
    "ProbeCancelledError",
    "RPC_CODE_CLASSIFICATION",
    "insecure_channel",
    "run",
    "wait_for_ready",
]
