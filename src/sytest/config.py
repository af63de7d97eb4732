"""Orchestrator configuration management.

Configuration is read from an optional YAML file (./sytest.yaml by default),
then overridden by SYTEST_* environment variables, then by command-line flags.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_FILE = "sytest.yaml"

DEFAULT_SERVER_COMMAND = [
    "python",
    "-m",
    "synapse.app.homeserver",
    "--config-path",
    "localhost-{port}/homeserver.yaml",
]
DEFAULT_READY_PATTERN = r"Synapse now listening on port {port}"

# Environment variable mappings
ENV_VARS = {
    "number": "SYTEST_NUMBER",
    "base_port": "SYTEST_BASE_PORT",
    "host": "SYTEST_HOST",
    "server_dir": "SYTEST_SERVER_DIR",
    "startup_timeout": "SYTEST_STARTUP_TIMEOUT",
    "retry_interval": "SYTEST_RETRY_INTERVAL",
    "tests_dir": "SYTEST_TESTS_DIR",
    "log_level": "SYTEST_LOG_LEVEL",
    "log_file": "SYTEST_LOG_FILE",
    "json_logs": "SYTEST_JSON_LOGS",
}


@dataclass
class SytestConfig:
    """Orchestrator configuration."""

    number: int = 2
    base_port: int = 8001
    host: str = "localhost"
    server_dir: str = "../synapse"
    server_command: list[str] = field(default_factory=lambda: list(DEFAULT_SERVER_COMMAND))
    ready_pattern: str = DEFAULT_READY_PATTERN
    startup_timeout: float = 10.0
    retry_interval: float = 1.0
    tests_dir: str = "tests"
    unit_pattern: str = r"^\d+.*\.py$"
    tls: bool = True
    verify_tls: bool = False
    client_log: int = 0
    server_log: int = 0
    log_level: str = "warning"
    log_file: str | None = None
    json_logs: bool = False

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def ports(self) -> list[int]:
        """Ports of the service instances, one per instance."""
        return [self.base_port + i for i in range(self.number)]

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def set(self, key: str, value: Any, source: str) -> None:
        """Set a config value, coercing it to the field's type."""
        setattr(self, key, _coerce(key, value))
        self._sources[key] = source


def _field_types() -> dict[str, Any]:
    return {f.name: f.type for f in fields(SytestConfig) if not f.name.startswith("_")}


def _coerce(key: str, value: Any) -> Any:
    types = _field_types()
    if key not in types:
        raise ConfigError(f"Unknown config key: {key}")

    expected = types[key]
    try:
        if expected in (int, "int"):
            return int(value)
        if expected in (float, "float"):
            return float(value)
        if expected in (bool, "bool"):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if key == "server_command":
            if isinstance(value, str):
                return value.split()
            return [str(v) for v in value]
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r} ({e})") from e


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", path=str(path))
    return data


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> SytestConfig:
    """Load orchestrator configuration.

    Precedence (highest to lowest):
    1. Command-line overrides (values that are None are ignored)
    2. Environment variables
    3. Config file (explicit path, or ./sytest.yaml if present)
    4. Defaults

    Args:
        config_path: Explicit config file; it must exist.
        overrides: Values from command-line flags.

    Returns:
        SytestConfig with values and sources

    Raises:
        ConfigError: If the explicit config file is missing or invalid.
    """
    config = SytestConfig()

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", path=str(path))
    else:
        path = Path(DEFAULT_CONFIG_FILE)

    if path.exists():
        for key, value in _read_config_file(path).items():
            config.set(key, value, "config file")

    for key, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            config.set(key, os.environ[env_var], "environment")

    for key, value in (overrides or {}).items():
        if value is not None:
            config.set(key, value, "command line")

    if config.number < 1:
        raise ConfigError(f"Number of servers must be at least 1, got {config.number}")

    return config
