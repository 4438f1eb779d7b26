"""
================================================================================
Compose Testing Pytest Configuration
================================================================================

Shared fixtures for the Docker Compose acceptance tests.

Fixtures:
    - config: Configuration loader instance
    - neo4j_image: Image under test (NEO4J_IMAGE), pulled once if configured
    - workspace_manager / workspace: Isolated per-test directories
    - compose_factory: Builds launchers and guarantees their teardown

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Generator, List

import allure
import pytest
from loguru import logger

from ..framework import (
    ConfigLoader,
    DockerComposeContainer,
    LoguruLogConsumer,
    Workspace,
    WorkspaceManager,
    wait_for_bolt_ready,
)
from ..framework.images import docker_available, ensure_image


RESOURCES_DIR = Path(__file__).parent.parent / "resources"

ComposeFactory = Callable[[Path, Workspace, str], DockerComposeContainer]


# =============================================================================
# Session-Scoped Fixtures (Shared across all tests)
# =============================================================================

@pytest.fixture(scope="session")
def config() -> ConfigLoader:
    """
    Provide configuration loader instance.

    Session-scoped to ensure configuration is loaded only once.
    """
    return ConfigLoader()


@pytest.fixture(scope="session")
def docker() -> None:
    """Skip the compose tests when no docker daemon is reachable."""
    if not docker_available():
        pytest.skip("docker daemon is not available")


@pytest.fixture(scope="session")
def neo4j_image(config: ConfigLoader, docker: None) -> str:
    """
    Image under test.

    Set NEO4J_IMAGE to test another build; with docker.pull_image enabled the
    image is pulled once per machine before the first test uses it.
    """
    image = config.image
    if config.get("docker.pull_image", False):
        ensure_image(image, always_pull=True)
    logger.info(f"Image under test: {image}")
    return image


@pytest.fixture(scope="session")
def resources_dir() -> Path:
    return RESOURCES_DIR


@pytest.fixture(scope="session")
def workspace_manager(config: ConfigLoader) -> Generator[WorkspaceManager, None, None]:
    """Owns the session root that every test workspace lives under."""
    manager = WorkspaceManager(
        root=config.get("workspace.root") or None,
        keep=config.get("workspace.keep", False),
    )
    yield manager
    manager.cleanup()


# =============================================================================
# Function-Scoped Fixtures (Fresh for each test)
# =============================================================================

@pytest.fixture
def workspace(
    workspace_manager: WorkspaceManager,
    request: pytest.FixtureRequest,
) -> Generator[Workspace, None, None]:
    """
    Fresh, empty directory for one test.

    Usage:
        def test_example(workspace):
            workspace.write_secret("neo4j_auth.txt", "neo4j/secret")
    """
    created = workspace_manager.create_folder(request.node.name)
    allure.dynamic.parameter("workspace", str(created.path))
    yield created
    workspace_manager.remove(created)


@pytest.fixture
def compose_factory(
    config: ConfigLoader,
    neo4j_image: str,
) -> Generator[ComposeFactory, None, None]:
    """
    Build compose launchers configured for the image under test.

    The factory binds NEO4J_IMAGE and HOST_ROOT, exposes the configured Bolt
    and HTTP ports of the service, waits for a Bolt handshake and streams the
    service logs into loguru. Every launcher it creates is stopped after the
    test, whether or not the test stopped it already.

    Usage:
        def test_example(compose_factory, workspace, resources_dir):
            compose_file = workspace.copy_fixture(resources_dir / "dockersecrets" / "x.yml")
            with compose_factory(compose_file, workspace, "x") as compose:
                compose.start()
    """
    launchers: List[DockerComposeContainer] = []

    def factory(compose_file: Path, workspace: Workspace, service: str) -> DockerComposeContainer:
        compose = (
            DockerComposeContainer(
                compose_file,
                compose_command=config.compose_command,
                down_timeout=int(config.get("docker.down_timeout", 10)),
            )
            .with_exposed_service(service, config.bolt_port)
            .with_exposed_service(service, config.http_port)
            .with_env("NEO4J_IMAGE", neo4j_image)
            .with_env("HOST_ROOT", str(workspace.path.absolute()))
            .waiting_for(service, wait_for_bolt_ready(config.startup_timeout, config.bolt_port))
            .with_log_consumer(service, LoguruLogConsumer(service))
        )
        launchers.append(compose)
        return compose

    yield factory

    for compose in launchers:
        compose.stop()
