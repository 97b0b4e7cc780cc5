"""Runner settings — loaded from environment / .env file / settings file / CLI flags."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings

from check_runner.errors import ConfigError

DEFAULT_SETTINGS_FILE = Path("/opt/mesosphere/etc/dcos-check-runner.yaml")


def default_check_config() -> str:
    if sys.platform == "win32":
        return os.environ.get("SYSTEMDRIVE", "") + "\\DCOS\\check-runner\\config\\dcos-check-config.json"
    return "/opt/mesosphere/etc/dcos-check-config.json"


class Settings(BaseSettings):
    """Process-wide settings for the CLI and the HTTP server."""

    model_config = {
        "env_prefix": "CHECK_RUNNER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Node role: master | agent
    role: str = ""
    verbose: bool = False

    # Check definitions
    check_config: str = default_check_config()

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8000
    base_uri: str = ""
    systemd_socket: bool = False

    # Logging
    log_level: str = "INFO"


def load_settings(config_file: str | Path | None = None, **overrides: Any) -> Settings:
    """Build Settings from a YAML settings file plus explicit overrides.

    Precedence: overrides (CLI flags) > settings file > environment > defaults.
    Without ``config_file`` the default file is read if it exists. ``None``
    overrides are ignored.
    """
    values: dict[str, Any] = {}

    path = Path(config_file) if config_file else DEFAULT_SETTINGS_FILE
    if config_file or path.exists():
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"unable to load settings file {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"settings file {path} must contain a mapping")
        values.update(raw)

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"invalid settings: {e}") from e
