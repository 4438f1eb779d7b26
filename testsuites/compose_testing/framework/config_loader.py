"""
================================================================================
Configuration Loader
================================================================================

YAML-based configuration management with environment variable override support.

Features:
    - Hierarchical YAML configuration loading
    - Environment variable override (NEO4J_IMAGE overrides neo4j.image)
    - Dot notation path access
    - Default value support
    - Typed accessors for the settings the compose harness relies on

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger


# Default configuration file paths
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "config.yaml"

DEFAULT_IMAGE = "neo4j:4.4-enterprise"
DEFAULT_COMPOSE_COMMAND = "docker compose"
DEFAULT_BOLT_PORT = 7687
DEFAULT_HTTP_PORT = 7474


class ConfigurationError(Exception):
    """Raised when configuration loading or access fails."""
    pass


class ConfigLoader:
    """
    Configuration loader with YAML and environment variable support.

    Configuration hierarchy (highest to lowest priority):
        1. Environment variables (NEO4J_IMAGE)
        2. YAML configuration file
        3. Default values

    Usage:
        >>> config = ConfigLoader()
        >>> config.get("neo4j.image", "neo4j:5")
        'neo4j:4.4.40-enterprise'  # From YAML or env var

        >>> config.get("neo4j.startup_timeout", 90)
        90  # Default value if not configured

    Environment Variable Mapping:
        - neo4j.image -> NEO4J_IMAGE
        - neo4j.startup_timeout -> NEO4J_STARTUP_TIMEOUT
        - workspace.keep -> WORKSPACE_KEEP
    """

    _instance: Optional["ConfigLoader"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[Path] = None) -> "ConfigLoader":
        """
        Singleton pattern - return existing instance if available.

        This ensures configuration is loaded only once per process,
        improving performance and ensuring consistency.
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """
        Initialize configuration loader.

        Args:
            config_path: Path to YAML configuration file.
                        Uses DEFAULT_CONFIG_PATH if not specified.
        """
        if getattr(self, "_initialized", False):
            return

        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            logger.warning(
                f"Configuration file not found: {self._config_path}. "
                f"Using defaults and environment variables only."
            )
            self._config = {}
            return

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}
            logger.debug(f"Loaded configuration from: {self._config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}"
            ) from e

        if not isinstance(self._config, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {self._config_path}"
            )

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        First checks environment variables, then YAML config, then default.

        Args:
            key: Dot-notation path (e.g., "neo4j.image")
            default: Default value if key not found

        Returns:
            Configuration value or default

        Examples:
            >>> config.get("neo4j.image")
            'neo4j:4.4-enterprise'

            >>> config.get("workspace.keep", False)
            False
        """
        # Check environment variable first
        env_key = key.upper().replace(".", "_")
        env_value = os.environ.get(env_key)
        if env_value is not None:
            return self._convert_type(env_value, default)

        # Navigate YAML config by dot notation
        value = self._config
        for part in key.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                value = None

            if value is None:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get entire configuration section.

        Args:
            section: Section name (e.g., "neo4j", "docker")

        Returns:
            Section dictionary or empty dict if not found
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """
        Reload configuration from file.

        Useful when configuration file has been updated during runtime.
        """
        self._load_config()
        logger.info(f"Configuration reloaded from: {self._config_path}")

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    @property
    def image(self) -> str:
        """Image under test, canonical name as accepted by docker."""
        image = str(self.get("neo4j.image", DEFAULT_IMAGE)).strip()
        if not image:
            raise ConfigurationError("neo4j.image (NEO4J_IMAGE) must not be empty")
        return image

    @property
    def bolt_port(self) -> int:
        """Bolt port inside the container."""
        return int(self.get("neo4j.bolt_port", DEFAULT_BOLT_PORT))

    @property
    def http_port(self) -> int:
        """HTTP port inside the container."""
        return int(self.get("neo4j.http_port", DEFAULT_HTTP_PORT))

    @property
    def startup_timeout(self) -> float:
        return float(self.get("neo4j.startup_timeout", 90.0))

    @property
    def compose_command(self) -> List[str]:
        """Compose CLI as an argv prefix, e.g. ["docker", "compose"]."""
        command = self.get("docker.compose_command", DEFAULT_COMPOSE_COMMAND)
        if isinstance(command, (list, tuple)):
            return [str(part) for part in command]
        parts = shlex.split(str(command))
        if not parts:
            raise ConfigurationError("docker.compose_command must not be empty")
        return parts

    @property
    def log_settings(self) -> Dict[str, Any]:
        """Keyword arguments for autotest_tools.common.init_logger."""
        return {
            "level": str(self.get("logging.level", "INFO")),
            "log_file": str(self.get("logging.file", "")) or None,
            "rotation": str(self.get("logging.rotation", "10 MB")),
            "retention": str(self.get("logging.retention", "7 days")),
        }

    def _convert_type(self, value: str, reference: Any) -> Any:
        """
        Convert string value to match reference type.

        Used for environment variables which are always strings.
        """
        if reference is None:
            return value

        if isinstance(reference, bool):
            return value.lower() in ("true", "1", "yes", "on")
        if isinstance(reference, int):
            try:
                return int(value)
            except ValueError:
                return value
        if isinstance(reference, float):
            try:
                return float(value)
            except ValueError:
                return value

        return value

    @classmethod
    def reset(cls) -> None:
        """
        Reset singleton instance.

        Useful for testing when configuration needs to be reloaded
        with different settings.
        """
        cls._instance = None
        cls._config = {}


__all__ = [
    "ConfigLoader",
    "ConfigurationError",
]
