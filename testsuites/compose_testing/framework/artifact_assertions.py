"""
================================================================================
Artifact Assertions
================================================================================

Fluent assertions over files a container writes back into the workspace
through a bind mount, typically the generated neo4j.conf:

    (assert_config_file(workspace.resolve("neo4j", "config", "neo4j.conf"))
        .exists()
        .readable()
        .lacks_line("dbms.memory.pagecache.size=10M")
        .has_line("dbms.memory.pagecache.size=50M"))

Line checks compare whole lines with surrounding whitespace stripped, so
"size=50M" never matches "size=500M".

================================================================================
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

import allure
from loguru import logger

from autotest_tools.report_tools.allure_utils import attach_file_content


def read_config_lines(path: Union[str, Path]) -> List[str]:
    """All lines of a text config file, whitespace-stripped."""
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f.read().splitlines()]


def parse_config(path: Union[str, Path]) -> Dict[str, str]:
    """
    Parse key=value lines.

    Blank lines and lines starting with '#' are skipped; when a key is set
    more than once the last assignment wins, as in neo4j.conf.
    """
    settings: Dict[str, str] = {}
    for line in read_config_lines(path):
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        settings[key.strip()] = value.strip()
    return settings


@dataclass
class ConfigFileAssertion:
    """Assertion chain for one configuration file."""

    path: Path

    def _lines(self) -> List[str]:
        return read_config_lines(self.path)

    def exists(self) -> "ConfigFileAssertion":
        """Assert the file exists."""
        assert self.path.is_file(), f"{self.path.name} file does not exist: {self.path}"
        return self

    def readable(self) -> "ConfigFileAssertion":
        """Assert the test process can read the file."""
        assert os.access(self.path, os.R_OK), f"cannot read {self.path.name} file: {self.path}"
        return self

    def has_line(self, line: str) -> "ConfigFileAssertion":
        """Assert an exact line is present."""
        with allure.step(f"{self.path.name} contains '{line}'"):
            lines = self._lines()
            if line.strip() not in lines:
                attach_file_content(self.path)
                raise AssertionError(f"{self.path.name} does not contain line '{line}'")
        logger.debug(f"{self.path.name} contains '{line}'")
        return self

    def lacks_line(self, line: str) -> "ConfigFileAssertion":
        """Assert an exact line is absent."""
        with allure.step(f"{self.path.name} does not contain '{line}'"):
            lines = self._lines()
            if line.strip() in lines:
                attach_file_content(self.path)
                raise AssertionError(f"{self.path.name} unexpectedly contains line '{line}'")
        return self

    def has_setting(self, key: str, value: str) -> "ConfigFileAssertion":
        """Assert the effective value of a setting (last assignment wins)."""
        settings = parse_config(self.path)
        assert key in settings, f"{self.path.name} does not set '{key}'"
        assert settings[key] == value, (
            f"{self.path.name} sets {key}={settings[key]}, expected {value}"
        )
        return self


def assert_config_file(path: Union[str, Path]) -> ConfigFileAssertion:
    """Start a fluent config file assertion chain."""
    return ConfigFileAssertion(Path(path))


__all__ = [
    "ConfigFileAssertion",
    "assert_config_file",
    "parse_config",
    "read_config_lines",
]
