"""
================================================================================
Compose Testing Framework
================================================================================

Harness components for acceptance tests that run a database image through
Docker Compose.

Modules:
    - config_loader: YAML configuration management
    - workspace: Per-test workspaces, fixture copies and secret files
    - descriptor: Compose descriptor parsing and variable interpolation
    - compose_launcher: Compose project lifecycle and port lookups
    - readiness: Bolt / HTTP readiness predicates
    - wait_helpers: Retry-with-timeout loop
    - database_io: Bolt connectivity checks
    - artifact_assertions: Assertions over files written by containers

Author: Automation Team
License: MIT
================================================================================
"""

from .artifact_assertions import assert_config_file, parse_config
from .compose_launcher import (
    ComposeCommandError,
    ContainerStartupError,
    DockerComposeContainer,
    ServiceLookupError,
)
from .config_loader import ConfigLoader, ConfigurationError
from .database_io import AuthenticationFailure, ConnectivityError, DatabaseIO, DatabaseIOError
from .descriptor import ComposeDescriptor, DescriptorError
from .log_consumer import LoguruLogConsumer
from .readiness import ReadinessTimeoutError, wait_for_bolt_ready, wait_for_http_ready
from .wait_helpers import WaitConfig, WaitTimeoutError
from .workspace import FixtureError, Workspace, WorkspaceManager, copy_fixture

__all__ = [
    "AuthenticationFailure",
    "ComposeCommandError",
    "ComposeDescriptor",
    "ConfigLoader",
    "ConfigurationError",
    "ConnectivityError",
    "ContainerStartupError",
    "DatabaseIO",
    "DatabaseIOError",
    "DescriptorError",
    "DockerComposeContainer",
    "FixtureError",
    "LoguruLogConsumer",
    "ReadinessTimeoutError",
    "ServiceLookupError",
    "WaitConfig",
    "WaitTimeoutError",
    "Workspace",
    "WorkspaceManager",
    "assert_config_file",
    "copy_fixture",
    "parse_config",
    "wait_for_bolt_ready",
    "wait_for_http_ready",
]
