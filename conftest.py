"""
Repository-level pytest configuration.

Provides the project root, sets up loguru once per process and fills in
defaults for the compose harness environment when the user or CI did not.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import pytest

from autotest_tools.common import init_logger
from testsuites.compose_testing.framework.config_loader import ConfigLoader


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return repo root path."""
    return Path(__file__).parent


@pytest.fixture(scope="session", autouse=True)
def _harness_logging() -> Generator[None, None, None]:
    """Configure loguru (level and optional file sink come from config/env)."""
    init_logger(**ConfigLoader().log_settings)
    yield


@pytest.fixture(scope="session", autouse=True)
def _compose_env_defaults() -> Generator[None, None, None]:
    """
    Keep docker compose output free of ANSI noise and interactive prompts.

    Values already present in the environment win.
    """
    defaults = {
        "COMPOSE_ANSI": "never",
        "COMPOSE_PROGRESS": "quiet",
    }

    for k, v in defaults.items():
        os.environ.setdefault(k, v)

    yield
