import pytest
import yaml

from testsuites.compose_testing.framework.config_loader import (
    ConfigLoader,
    ConfigurationError,
)


@pytest.fixture(autouse=True)
def _fresh_loader():
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


def _write(path, document):
    path.write_text(yaml.dump(document), encoding="utf-8")
    return path


def test_env_override_and_defaults(monkeypatch, tmp_path):
    config_path = _write(
        tmp_path / "config.yaml",
        {"neo4j": {"image": "neo4j:4.4-enterprise", "startup_timeout": 90}},
    )
    monkeypatch.delenv("NEO4J_IMAGE", raising=False)

    loader = ConfigLoader(config_path=config_path)
    assert loader.get("neo4j.image") == "neo4j:4.4-enterprise"
    assert loader.get("neo4j.missing", "fallback") == "fallback"

    ConfigLoader.reset()
    monkeypatch.setenv("NEO4J_IMAGE", "neo4j:4.4.40-enterprise")
    loader = ConfigLoader(config_path=config_path)
    assert loader.get("neo4j.image") == "neo4j:4.4.40-enterprise"
    assert loader.image == "neo4j:4.4.40-enterprise"


def test_env_values_follow_default_type(monkeypatch, tmp_path):
    config_path = _write(tmp_path / "config.yaml", {})
    monkeypatch.setenv("WORKSPACE_KEEP", "yes")
    monkeypatch.setenv("NEO4J_STARTUP_TIMEOUT", "120")

    loader = ConfigLoader(config_path=config_path)
    assert loader.get("workspace.keep", False) is True
    assert loader.get("neo4j.startup_timeout", 90) == 120
    assert loader.startup_timeout == 120.0


def test_reload_updates_values(tmp_path):
    config_path = _write(tmp_path / "config.yaml", {"neo4j": {"startup_timeout": 5}})

    loader = ConfigLoader(config_path=config_path)
    assert loader.get("neo4j.startup_timeout") == 5

    _write(config_path, {"neo4j": {"startup_timeout": 15}})
    loader.reload()
    assert loader.get("neo4j.startup_timeout") == 15


def test_compose_command_is_split(monkeypatch, tmp_path):
    config_path = _write(tmp_path / "config.yaml", {"docker": {"compose_command": "docker compose"}})
    monkeypatch.delenv("DOCKER_COMPOSE_COMMAND", raising=False)

    loader = ConfigLoader(config_path=config_path)
    assert loader.compose_command == ["docker", "compose"]

    monkeypatch.setenv("DOCKER_COMPOSE_COMMAND", "docker-compose")
    assert loader.compose_command == ["docker-compose"]


def test_missing_file_uses_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv("NEO4J_IMAGE", raising=False)
    loader = ConfigLoader(config_path=tmp_path / "absent.yaml")
    assert loader.image == "neo4j:4.4-enterprise"
    assert loader.get_section("neo4j") == {}


def test_invalid_yaml_raises(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("neo4j: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigLoader(config_path=config_path)


def test_empty_image_is_rejected(monkeypatch, tmp_path):
    monkeypatch.setenv("NEO4J_IMAGE", "  ")
    loader = ConfigLoader(config_path=_write(tmp_path / "config.yaml", {}))
    with pytest.raises(ConfigurationError):
        loader.image


def test_bundled_config_declares_compose_defaults():
    loader = ConfigLoader()
    assert loader.get_section("neo4j")["bolt_port"] == 7687
    assert loader.get_section("neo4j")["http_port"] == 7474
    assert loader.get_section("docker")["compose_command"] == "docker compose"


def test_connection_settings_from_file_and_env(monkeypatch, tmp_path):
    for name in ("NEO4J_BOLT_PORT", "NEO4J_HTTP_PORT"):
        monkeypatch.delenv(name, raising=False)
    config_path = _write(
        tmp_path / "config.yaml",
        {"neo4j": {"bolt_port": 17687, "http_port": 17474}},
    )

    loader = ConfigLoader(config_path=config_path)
    assert loader.bolt_port == 17687
    assert loader.http_port == 17474

    monkeypatch.setenv("NEO4J_BOLT_PORT", "7688")
    monkeypatch.setenv("NEO4J_HTTP_PORT", "7475")
    assert loader.bolt_port == 7688
    assert loader.http_port == 7475


def test_connection_settings_default(monkeypatch, tmp_path):
    for name in ("NEO4J_BOLT_PORT", "NEO4J_HTTP_PORT"):
        monkeypatch.delenv(name, raising=False)
    loader = ConfigLoader(config_path=tmp_path / "absent.yaml")
    assert (loader.bolt_port, loader.http_port) == (7687, 7474)


def test_log_settings_follow_config_and_env(monkeypatch, tmp_path):
    for name in ("LOGGING_LEVEL", "LOGGING_FILE", "LOGGING_ROTATION", "LOGGING_RETENTION"):
        monkeypatch.delenv(name, raising=False)
    config_path = _write(
        tmp_path / "config.yaml",
        {"logging": {"level": "DEBUG", "file": "", "rotation": "1 MB"}},
    )

    loader = ConfigLoader(config_path=config_path)
    assert loader.log_settings == {
        "level": "DEBUG",
        "log_file": None,
        "rotation": "1 MB",
        "retention": "7 days",
    }

    monkeypatch.setenv("LOGGING_LEVEL", "WARNING")
    monkeypatch.setenv("LOGGING_FILE", "reports/logs/harness.log")
    settings = loader.log_settings
    assert settings["level"] == "WARNING"
    assert settings["log_file"] == "reports/logs/harness.log"
