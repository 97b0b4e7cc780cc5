"""Check registry — parses the check config and provides typed models.

The config document looks like::

    {
      "cluster_checks": {"<name>": {"description": ..., "cmd": [...], "timeout": "1s"}},
      "node_checks": {
        "checks": {"<name>": {..., "roles": ["master"]}},
        "prestart": ["<name>", ...],
        "poststart": ["<name>", ...]
      },
      "check_env": {"<VAR>": "<value>"}
    }

A registry is built in one go and never mutated; reloading builds a new one.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from check_runner.checks.durations import format_duration, parse_duration
from check_runner.errors import ConfigError

logger = logging.getLogger(__name__)

ROLE_MASTER = "master"
ROLE_AGENT = "agent"
ROLES = (ROLE_MASTER, ROLE_AGENT)

_YAML_SUFFIXES = (".yaml", ".yml")


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CheckDefinition:
    """Definition of a single check command."""

    name: str
    cmd: tuple[str, ...]
    timeout: str  # canonical form, e.g. "500ms"
    timeout_seconds: float
    description: str = ""
    roles: frozenset[str] = frozenset()  # empty = every role

    def applies_to(self, role: str) -> bool:
        return not self.roles or role in self.roles


@dataclass(frozen=True)
class Registry:
    """All checks known to a runner, as loaded from one config document."""

    cluster_checks: dict[str, CheckDefinition] = field(default_factory=dict)
    node_checks: dict[str, CheckDefinition] = field(default_factory=dict)
    prestart: tuple[str, ...] = ()
    poststart: tuple[str, ...] = ()
    check_env: dict[str, str] = field(default_factory=dict)


# ── Loading ──────────────────────────────────────────────────────────────────


def parse_payload(text: str | bytes, fmt: str = "json") -> Any:
    """Decode a config document. ``fmt`` is ``"json"`` or ``"yaml"``."""
    try:
        if fmt == "yaml":
            return yaml.safe_load(text)
        return json.loads(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"unable to parse check config: {e}") from e


def read_payload(path: str | Path) -> Any:
    """Read and decode a config file; YAML by suffix, JSON otherwise."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"unable to read check config {path}: {e}") from e
    fmt = "yaml" if path.suffix.lower() in _YAML_SUFFIXES else "json"
    return parse_payload(text, fmt)


def load_registry(payload: Any) -> Registry:
    """Validate a decoded config document and build a Registry."""
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ConfigError(f"check config must be an object, got {type(payload).__name__}")

    cluster_checks = _parse_checks(_section(payload, "cluster_checks"), "cluster_checks")

    raw_node = _section(payload, "node_checks")
    node_checks = _parse_checks(_section(raw_node, "checks", "node_checks"), "node_checks.checks")
    prestart = _parse_selection(raw_node.get("prestart"), "prestart", node_checks)
    poststart = _parse_selection(raw_node.get("poststart"), "poststart", node_checks)

    registry = Registry(
        cluster_checks=cluster_checks,
        node_checks=node_checks,
        prestart=prestart,
        poststart=poststart,
        check_env=_parse_env(payload.get("check_env")),
    )
    logger.debug(
        "Parsed check config: %d cluster checks, %d node checks",
        len(cluster_checks),
        len(node_checks),
    )
    return registry


# ── Parsers ──────────────────────────────────────────────────────────────────


def _section(raw: Mapping[str, Any], key: str, parent: str = "") -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        where = f"{parent}.{key}" if parent else key
        raise ConfigError(f"{where} must be an object, got {type(value).__name__}")
    return value


def _parse_checks(raw: Mapping[str, Any], where: str) -> dict[str, CheckDefinition]:
    checks: dict[str, CheckDefinition] = {}
    for name, entry in raw.items():
        checks[name] = _parse_check(name, entry, where)
    return checks


def _parse_check(name: str, raw: Any, where: str) -> CheckDefinition:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where}.{name} must be an object")

    cmd = raw.get("cmd")
    if not cmd:
        raise ConfigError(f"{where}.{name}: cmd is required")
    if not _is_str_list(cmd):
        raise ConfigError(f"{where}.{name}: cmd must be a list of strings")

    timeout = raw.get("timeout")
    if timeout is None:
        raise ConfigError(f"{where}.{name}: timeout is required")
    try:
        timeout_seconds = parse_duration(timeout)
    except ValueError as e:
        raise ConfigError(f"{where}.{name}: {e}") from e
    if timeout_seconds <= 0:
        raise ConfigError(f"{where}.{name}: timeout must be positive, got {timeout!r}")

    roles = raw.get("roles") or []
    if not _is_str_list(roles):
        raise ConfigError(f"{where}.{name}: roles must be a list of strings")
    for role in roles:
        if role not in ROLES:
            raise ConfigError(
                f"{where}.{name}: invalid role {role!r}, must be one of: {', '.join(ROLES)}"
            )

    description = raw.get("description") or ""
    if not isinstance(description, str):
        raise ConfigError(f"{where}.{name}: description must be a string")

    return CheckDefinition(
        name=name,
        cmd=tuple(cmd),
        timeout=format_duration(timeout_seconds),
        timeout_seconds=timeout_seconds,
        description=description,
        roles=frozenset(roles),
    )


def _parse_selection(
    raw: Any, key: str, node_checks: Mapping[str, CheckDefinition]
) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not _is_str_list(raw):
        raise ConfigError(f"node_checks.{key} must be a list of check names")
    for name in raw:
        if name not in node_checks:
            raise ConfigError(f"node_checks.{key}: check {name} is not defined in node_checks.checks")
    # Drop duplicates, keep the first position
    return tuple(dict.fromkeys(raw))


def _parse_env(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigError("check_env must be an object of strings")
    env: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key or "=" in key:
            raise ConfigError(f"check_env: invalid variable name {key!r}")
        if not isinstance(value, str):
            raise ConfigError(f"check_env.{key} must be a string")
        env[key] = value
    return env


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)
