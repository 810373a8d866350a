"""Shared fixtures: in-process gRPC servers the probe can be pointed at."""

from __future__ import annotations

import socket
import time
from concurrent import futures

import grpc
import pytest
from grpc_health.v1 import health, health_pb2, health_pb2_grpc


class SlowHealthServicer(health_pb2_grpc.HealthServicer):
    """Answers SERVING, but only after ``delay`` seconds."""

    def __init__(self, delay: float):
        self.delay = delay

    def Check(self, request, context):
        time.sleep(self.delay)
        return health_pb2.HealthCheckResponse(status=health_pb2.HealthCheckResponse.SERVING)


class RecordingHealthServicer(health_pb2_grpc.HealthServicer):
    """Answers SERVING and keeps the user-agent header of every Check."""

    def __init__(self):
        self.user_agents = []

    def Check(self, request, context):
        self.user_agents.append(dict(context.invocation_metadata()).get("user-agent", ""))
        return health_pb2.HealthCheckResponse(status=health_pb2.HealthCheckResponse.SERVING)


def _start(register) -> tuple:
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=4))
    register(server)
    port = server.add_insecure_port("127.0.0.1:0")
    server.start()
    return server, f"127.0.0.1:{port}"


@pytest.fixture
def health_server():
    """Standard HealthServicer; overall status "" starts SERVING. Yields (address, servicer)."""
    servicer = health.HealthServicer()
    servicer.set("", health_pb2.HealthCheckResponse.SERVING)
    server, address = _start(lambda s: health_pb2_grpc.add_HealthServicer_to_server(servicer, s))
    yield address, servicer
    server.stop(None)


@pytest.fixture
def bare_server():
    """A gRPC server with no services registered (health protocol unimplemented)."""
    server, address = _start(lambda s: None)
    yield address
    server.stop(None)


@pytest.fixture
def slow_health_server():
    server, address = _start(
        lambda s: health_pb2_grpc.add_HealthServicer_to_server(SlowHealthServicer(delay=1.5), s))
    yield address
    server.stop(None)


@pytest.fixture
def closed_port_address():
    """Address of a local port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"127.0.0.1:{port}"


@pytest.fixture
def recording_health_server():
    """Yields (address, servicer); servicer.user_agents lists the header of each Check."""
    servicer = RecordingHealthServicer()
    server, address = _start(lambda s: health_pb2_grpc.add_HealthServicer_to_server(servicer, s))
    yield address, servicer
    server.stop(None)
