"""
================================================================================
Docker Compose Launcher
================================================================================

Starts a compose descriptor as an isolated project, publishes the container
ports a test needs on free host ports, waits for each service to become ready
and tears everything down again.

Features:
    - Unique compose project per instance (parallel-safe)
    - Ephemeral host ports via a generated override file
    - Readiness predicates injected per service
    - Log streaming into loguru and Allure
    - Idempotent teardown, guaranteed by the context manager protocol

Usage:
    >>> compose = (
    ...     DockerComposeContainer(workspace.copy_fixture(fixture))
    ...     .with_exposed_service("simplecontainer", 7687)
    ...     .with_env("NEO4J_IMAGE", "neo4j:4.4-enterprise")
    ...     .with_env("HOST_ROOT", str(workspace.path))
    ...     .waiting_for("simplecontainer", wait_for_bolt_ready(90))
    ... )
    >>> with compose:
    ...     compose.start()
    ...     port = compose.get_service_port("simplecontainer", 7687)

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import os
import subprocess
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

import allure
import yaml
from loguru import logger

from autotest_tools.report_tools.allure_utils import (
    attach_compose_descriptor,
    attach_container_logs,
    attach_secret_files,
)

from .descriptor import ComposeDescriptor, DescriptorError
from .log_consumer import ComposeLogFollower, LogConsumer
from .readiness import ReadinessPredicate, ServiceEndpoint
from .wait_helpers import WaitTimeoutError


DEFAULT_COMPOSE_COMMAND = ("docker", "compose")

# Generous: covers an image pull on a cold CI runner
DEFAULT_UP_TIMEOUT = 600.0
DEFAULT_DOWN_TIMEOUT = 10


class ComposeCommandError(Exception):
    """Raised when the compose CLI exits with a non-zero code."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(self.command)} failed with code {returncode}:\n"
            f"stdout: {stdout}\nstderr: {stderr}"
        )


class ContainerStartupError(Exception):
    """Raised when a composition fails to start or a service never becomes ready."""

    def __init__(self, image: str, service: Optional[str] = None) -> None:
        self.image = image
        self.service = service
        message = f"Container startup failed for image {image}"
        if service:
            message = f"{message} (service '{service}')"
        super().__init__(message)


class ServiceLookupError(KeyError):
    """Raised when a host/port is requested for a service port that is not exposed."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


def docker_host() -> str:
    """Host name under which published container ports are reachable."""
    docker_host_url = os.environ.get("DOCKER_HOST", "")
    if docker_host_url.startswith(("tcp://", "http://", "https://", "ssh://")):
        hostname = urlparse(docker_host_url).hostname
        if hostname:
            return hostname
    return "localhost"


def parse_port_output(output: str) -> int:
    """
    Parse the output of `docker compose port`.

    Accepts "0.0.0.0:49153", "[::]:49153" and ":::49153"; with several
    lines (IPv4 and IPv6 bindings) the first one wins.
    """
    for line in output.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        _, _, port = line.rpartition(":")
        if port.isdigit() and int(port) > 0:
            return int(port)
    raise ValueError(f"Unexpected compose port output: {output!r}")


class DockerComposeContainer:
    """
    Handle to one compose project.

    The handle is created stopped. start() brings the project up and blocks
    until every readiness predicate succeeds; stop() (or leaving the `with`
    block) brings it down exactly once.
    """

    def __init__(
        self,
        compose_file: Union[str, Path],
        project_name: Optional[str] = None,
        compose_command: Optional[Sequence[str]] = None,
        down_timeout: int = DEFAULT_DOWN_TIMEOUT,
    ) -> None:
        """
        Args:
            compose_file: Descriptor, normally a workspace-local copy
            project_name: Compose project name. Unique random name if None.
            compose_command: Compose CLI argv prefix, ["docker", "compose"] by default
            down_timeout: Seconds `down` waits for containers to stop
        """
        self.compose_file = Path(compose_file).absolute()
        self.project_name = project_name or f"neo4j-compose-{uuid.uuid4().hex[:10]}"
        self.compose_command = list(compose_command or DEFAULT_COMPOSE_COMMAND)
        self.down_timeout = down_timeout
        self.up_timeout = DEFAULT_UP_TIMEOUT

        self._exposed: Dict[str, List[int]] = {}
        self._env: Dict[str, str] = {}
        self._waits: Dict[str, ReadinessPredicate] = {}
        self._log_consumers: Dict[str, List[LogConsumer]] = {}

        self._descriptor: Optional[ComposeDescriptor] = None
        self._override_file: Optional[Path] = None
        self._followers: Dict[str, ComposeLogFollower] = {}
        self._endpoints: Dict[str, ServiceEndpoint] = {}
        self._started = False
        self._stopped = False
        self.stop_count = 0

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def with_exposed_service(self, service: str, port: int) -> "DockerComposeContainer":
        ports = self._exposed.setdefault(service, [])
        if int(port) not in ports:
            ports.append(int(port))
        return self

    def with_env(self, name: str, value: str) -> "DockerComposeContainer":
        self._env[name] = str(value)
        return self

    def waiting_for(self, service: str, predicate: ReadinessPredicate) -> "DockerComposeContainer":
        self._waits[service] = predicate
        return self

    def with_log_consumer(self, service: str, consumer: LogConsumer) -> "DockerComposeContainer":
        self._log_consumers.setdefault(service, []).append(consumer)
        return self

    def with_startup_timeout(self, seconds: float) -> "DockerComposeContainer":
        """Upper bound for `docker compose up -d` itself (pulls included)."""
        self.up_timeout = float(seconds)
        return self

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def environment(self) -> Dict[str, str]:
        """Process environment for the compose CLI: os.environ plus bindings."""
        env = dict(os.environ)
        env.update(self._env)
        return env

    @property
    def bindings(self) -> Dict[str, str]:
        return dict(self._env)

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def base_command(self) -> List[str]:
        command = self.compose_command + [
            "-p", self.project_name,
            "-f", str(self.compose_file),
        ]
        if self._override_file is not None:
            command += ["-f", str(self._override_file)]
        return command

    @property
    def services(self) -> List[str]:
        """Services the test interacts with, in declaration order."""
        ordered: List[str] = []
        for service in list(self._exposed) + list(self._waits) + list(self._log_consumers):
            if service not in ordered:
                ordered.append(service)
        return ordered

    # ------------------------------------------------------------------
    # Compose CLI
    # ------------------------------------------------------------------

    def _compose(
        self,
        *args: str,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        command = self.base_command + list(args)
        logger.debug(f"$ {' '.join(command)}")
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            env=self.environment,
            cwd=str(self.compose_file.parent),
            timeout=timeout,
        )
        if result.stderr.strip():
            logger.debug(f"[compose stderr] {result.stderr.rstrip()}")
        if check and result.returncode != 0:
            raise ComposeCommandError(command, result.returncode, result.stdout, result.stderr)
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _validate(self, descriptor: ComposeDescriptor) -> None:
        unbound = descriptor.unbound_variables(self.environment)
        if unbound:
            raise DescriptorError(
                f"Unbound variables in {self.compose_file.name}: {sorted(unbound)}. "
                f"Bind them with with_env()."
            )
        for service in self.services:
            descriptor.service(service)

    def _write_port_override(self, descriptor: ComposeDescriptor) -> Path:
        """Publish exposed ports on ephemeral host ports without touching the descriptor."""
        services = {}
        for service, ports in self._exposed.items():
            declared = set(descriptor.declared_ports(service))
            extra = [str(port) for port in ports if port not in declared]
            if extra:
                services[service] = {"ports": extra}

        override = self.compose_file.parent / f".{self.project_name}.ports.yml"
        override.write_text(
            yaml.safe_dump({"services": services}, default_flow_style=False),
            encoding="utf-8",
        )
        return override

    def _start_log_followers(self) -> None:
        for service, consumers in self._log_consumers.items():
            follower = ComposeLogFollower(
                self.base_command,
                service,
                consumers,
                env=self.environment,
                cwd=str(self.compose_file.parent),
            )
            self._followers[service] = follower.start()

    def _resolve_endpoint(self, service: str) -> ServiceEndpoint:
        ports = {}
        for container_port in self._exposed.get(service, []):
            result = self._compose("port", service, str(container_port), timeout=30)
            ports[container_port] = parse_port_output(result.stdout)
            logger.info(
                f"{service}:{container_port} published on {docker_host()}:{ports[container_port]}"
            )
        return ServiceEndpoint(service=service, host=docker_host(), ports=ports)

    def _image_of(self, service: Optional[str]) -> str:
        fallback = self._env.get("NEO4J_IMAGE", str(self.compose_file))
        if self._descriptor is None:
            return fallback
        candidates = [service] if service else []
        candidates += self.services + self._descriptor.services
        for candidate in candidates:
            try:
                image = self._descriptor.image_for(candidate, self.environment)
            except DescriptorError:
                continue
            if image:
                return image
        # build-only services have no image reference
        return fallback

    def start(self) -> "DockerComposeContainer":
        """
        Bring the project up and wait for readiness.

        Raises:
            DescriptorError: Descriptor malformed or a required variable is unbound
            RuntimeError: The launcher was already stopped; build a new one
            ContainerStartupError: `up` failed, a port was not published or a
                readiness predicate timed out. The project is torn down first.
        """
        if self._stopped:
            raise RuntimeError(f"Compose project {self.project_name} already stopped")
        if self._started:
            return self

        with allure.step(f"Start compose project {self.project_name}"):
            self._descriptor = ComposeDescriptor.load(self.compose_file)
            self._validate(self._descriptor)

            attach_compose_descriptor(self.compose_file, self.bindings)
            secrets = self._descriptor.secret_files(self.environment)
            if secrets:
                attach_secret_files(secrets)
            for name, path in self._descriptor.missing_secret_files(self.environment).items():
                logger.warning(f"Secret '{name}' references a missing file: {path}")

            self._override_file = self._write_port_override(self._descriptor)
            self._started = True

            failing_service: Optional[str] = None
            try:
                logger.info(f"Starting compose project {self.project_name} ({self.compose_file.name})")
                self._compose("up", "-d", timeout=self.up_timeout)
                self._start_log_followers()

                for service in self.services:
                    failing_service = service
                    endpoint = self._resolve_endpoint(service)
                    self._endpoints[service] = endpoint
                    predicate = self._waits.get(service)
                    if predicate is not None:
                        with allure.step(f"Wait for {service} to become ready"):
                            predicate(endpoint)
            except (
                ComposeCommandError,
                WaitTimeoutError,
                subprocess.TimeoutExpired,
                OSError,
                ValueError,
                KeyError,
            ) as e:
                image = self._image_of(failing_service)
                logger.error(f"Container startup failed for image {image}: {e}")
                self._attach_logs()
                self.stop()
                raise ContainerStartupError(image, failing_service) from e

        logger.info(f"Compose project {self.project_name} is ready")
        return self

    def stop(self) -> None:
        """Tear the project down. Only the first call after start() does work."""
        if not self._started or self._stopped:
            return
        self._stopped = True
        self._endpoints.clear()

        self.stop_count += 1
        with allure.step(f"Stop compose project {self.project_name}"):
            for follower in self._followers.values():
                follower.stop()

            try:
                self._compose(
                    "down", "--volumes", "--remove-orphans",
                    "--timeout", str(self.down_timeout),
                    timeout=self.down_timeout + 120,
                )
                logger.info(f"Compose project {self.project_name} removed")
            except (ComposeCommandError, subprocess.TimeoutExpired, OSError) as e:
                logger.error(f"Failed to tear down compose project {self.project_name}: {e}")

            if self._override_file is not None:
                self._override_file.unlink(missing_ok=True)
                self._override_file = None

    def __enter__(self) -> "DockerComposeContainer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None and not isinstance(exc_val, ContainerStartupError) and self.is_running:
            self._attach_logs()
        self.stop()
        return False

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _endpoint(self, service: str, port: int) -> ServiceEndpoint:
        endpoint = self._endpoints.get(service)
        if endpoint is None or port not in endpoint.ports:
            raise ServiceLookupError(
                f"Port {port} of service '{service}' is not exposed or the project "
                f"is not started. Use with_exposed_service('{service}', {port})."
            )
        return endpoint

    def get_service_host(self, service: str, port: int) -> str:
        return self._endpoint(service, port).host

    def get_service_port(self, service: str, port: int) -> int:
        return self._endpoint(service, port).port(port)

    def get_endpoint(self, service: str) -> ServiceEndpoint:
        endpoint = self._endpoints.get(service)
        if endpoint is None:
            raise ServiceLookupError(f"Service '{service}' has no resolved endpoint")
        return endpoint

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def logs(self, service: Optional[str] = None) -> str:
        """Logs of one service (or all services) collected so far."""
        if service is not None and service in self._followers:
            return self._followers[service].output
        if not self._started:
            return ""

        args = ["logs", "--no-color"]
        if service is not None:
            args.append(service)
        try:
            result = self._compose(*args, timeout=60, check=False)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.warning(f"Cannot collect logs for {service or self.project_name}: {e}")
            return ""
        return result.stdout + result.stderr

    def _attach_logs(self) -> None:
        for service in self.services or [None]:
            attach_container_logs(service or self.project_name, self.logs(service))


__all__ = [
    "ComposeCommandError",
    "ContainerStartupError",
    "DockerComposeContainer",
    "ServiceLookupError",
    "docker_host",
    "parse_port_output",
]
