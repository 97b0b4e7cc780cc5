"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from check_runner.runner import Runner

COMBINED_CMD = ["sh", "-c", "echo STDOUT; echo STDERR >&2"]
COMBINED_OUTPUT = "STDOUT\nSTDERR\n"


def _check(name: str, **extra: Any) -> dict[str, Any]:
    return {
        "description": name.replace("-", " ").capitalize(),
        "cmd": ["echo", name],
        "timeout": "1s",
        **extra,
    }


# Mirrors what the HTTP API is tested against
API_CONFIG: dict[str, Any] = {
    "cluster_checks": {
        "cluster-check-1": _check("cluster-check-1"),
        "cluster-check-2": _check("cluster-check-2"),
    },
    "node_checks": {
        "checks": {
            "node-check": _check("node-check"),
            "node-check-master": _check("node-check-master", roles=["master"]),
            "node-check-agent": _check("node-check-agent", roles=["agent"]),
            "node-check-prestart": _check("node-check-prestart"),
        },
        "prestart": ["node-check-prestart"],
        "poststart": ["node-check", "node-check-master", "node-check-agent"],
    },
}


@pytest.fixture
def api_config() -> dict[str, Any]:
    return json.loads(json.dumps(API_CONFIG))


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a check config to a temp file and return its path."""

    def _write(config: dict[str, Any], name: str = "checks.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(config), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def master_runner(api_config: dict[str, Any]) -> Runner:
    runner = Runner("master")
    runner.load(api_config)
    return runner


@pytest.fixture
def agent_runner(api_config: dict[str, Any]) -> Runner:
    runner = Runner("agent")
    runner.load(api_config)
    return runner
