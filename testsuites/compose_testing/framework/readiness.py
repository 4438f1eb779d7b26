"""
================================================================================
Readiness Probes
================================================================================

Protocol-level checks deciding when a started service accepts real traffic.

A readiness predicate is a plain callable taking a ServiceEndpoint. It blocks
until the service is ready and raises ReadinessTimeoutError otherwise. The
compose launcher receives predicates from the test and never hardcodes a
protocol:

    compose.waiting_for("simplecontainer", wait_for_bolt_ready(timeout=90))

Probes:
    - bolt_handshake: TCP connect + Bolt version negotiation
    - http_status: HTTP GET answering 2xx

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Tuple

import httpx
from loguru import logger

from .wait_helpers import WaitTimeoutError, get_wait_config, wait_with_backoff


BOLT_MAGIC_PREAMBLE = b"\x60\x60\xb0\x17"

# Each proposal is [reserved, range, minor, major]; range N accepts
# major.minor down to major.(minor - N)
BOLT_VERSION_PROPOSALS: Tuple[bytes, ...] = (
    bytes((0x00, 0x08, 0x08, 0x05)),  # 5.8 .. 5.0
    bytes((0x00, 0x02, 0x04, 0x04)),  # 4.4 .. 4.2
    bytes((0x00, 0x00, 0x01, 0x04)),  # 4.1
    bytes((0x00, 0x00, 0x00, 0x03)),  # 3.0
)

DEFAULT_READY_TIMEOUT = 90.0
DEFAULT_CHECK_TIMEOUT = 5.0


class BoltHandshakeError(ConnectionError):
    """Raised when the server accepts TCP but does not speak a usable Bolt version."""
    pass


class ReadinessTimeoutError(WaitTimeoutError):
    """Raised when a service does not become ready within its timeout."""
    pass


@dataclass(frozen=True)
class ServiceEndpoint:
    """Where a compose service can be reached from the test process."""

    service: str
    host: str
    ports: Mapping[int, int] = field(default_factory=dict)

    def port(self, container_port: int) -> int:
        try:
            return self.ports[container_port]
        except KeyError:
            raise KeyError(
                f"Port {container_port} of service '{self.service}' is not exposed. "
                f"Exposed: {sorted(self.ports)}"
            ) from None


ReadinessPredicate = Callable[[ServiceEndpoint], None]


def _recv_exactly(sock: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def bolt_handshake(host: str, port: int, timeout: float = DEFAULT_CHECK_TIMEOUT) -> Tuple[int, int]:
    """
    Perform the Bolt protocol handshake and return the agreed version.

    Args:
        host: Server host
        port: Bolt port on that host
        timeout: Socket timeout in seconds

    Returns:
        (major, minor) version chosen by the server

    Raises:
        OSError: Connection refused, reset or timed out
        BoltHandshakeError: Server closed early or rejected every proposal
    """
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall(BOLT_MAGIC_PREAMBLE + b"".join(BOLT_VERSION_PROPOSALS))
        response = _recv_exactly(sock, 4)

    if len(response) < 4:
        raise BoltHandshakeError(
            f"Bolt handshake with {host}:{port} ended after {len(response)} bytes"
        )

    _, _, minor, major = struct.unpack(">BBBB", response)
    if major == 0:
        raise BoltHandshakeError(f"Server at {host}:{port} rejected all Bolt versions")

    return major, minor


def http_status(
    host: str,
    port: int,
    path: str = "/",
    timeout: float = DEFAULT_CHECK_TIMEOUT,
) -> int:
    """
    GET an HTTP endpoint and return its status code.

    Raises:
        httpx.HTTPError: Network failure
    """
    url = f"http://{host}:{port}/{path.lstrip('/')}"
    response = httpx.get(url, timeout=timeout)
    return response.status_code


def wait_for_bolt_ready(
    timeout: float = DEFAULT_READY_TIMEOUT,
    container_port: int = 7687,
) -> ReadinessPredicate:
    """
    Readiness predicate completing a Bolt handshake on container_port.

    Args:
        timeout: Seconds to keep retrying
        container_port: Bolt port inside the container

    Returns:
        Predicate raising ReadinessTimeoutError when the timeout elapses
    """
    config = get_wait_config("bolt_ready").with_timeout(timeout)

    def predicate(endpoint: ServiceEndpoint) -> None:
        host, port = endpoint.host, endpoint.port(container_port)

        def check() -> Tuple[bool, str]:
            major, minor = bolt_handshake(host, port)
            return True, f"Bolt {major}.{minor}"

        version = wait_with_backoff(
            check,
            scenario="bolt_ready",
            description=f"Bolt ready on {endpoint.service} ({host}:{port})",
            config=config,
            error_cls=ReadinessTimeoutError,
        )
        logger.info(f"{endpoint.service} negotiated {version}")

    return predicate


def wait_for_http_ready(
    path: str = "/",
    timeout: float = DEFAULT_READY_TIMEOUT,
    container_port: int = 7474,
    expected_status: Optional[int] = None,
) -> ReadinessPredicate:
    """
    Readiness predicate polling an HTTP endpoint on container_port.

    Any 2xx status counts as ready unless expected_status is given.
    """
    config = get_wait_config("http_ready").with_timeout(timeout)

    def predicate(endpoint: ServiceEndpoint) -> None:
        host, port = endpoint.host, endpoint.port(container_port)

        def check() -> Tuple[bool, int]:
            status = http_status(host, port, path)
            if expected_status is not None:
                return status == expected_status, status
            return 200 <= status < 300, status

        wait_with_backoff(
            check,
            scenario="http_ready",
            description=f"HTTP {path} ready on {endpoint.service} ({host}:{port})",
            config=config,
            error_cls=ReadinessTimeoutError,
        )

    return predicate


def all_of(*predicates: ReadinessPredicate) -> ReadinessPredicate:
    """Combine predicates; each one runs in order against the same endpoint."""
    def predicate(endpoint: ServiceEndpoint) -> None:
        for check in predicates:
            check(endpoint)

    return predicate


__all__ = [
    "BoltHandshakeError",
    "ReadinessPredicate",
    "ReadinessTimeoutError",
    "ServiceEndpoint",
    "all_of",
    "bolt_handshake",
    "http_status",
    "wait_for_bolt_ready",
    "wait_for_http_ready",
]
