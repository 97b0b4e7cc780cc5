"""Check outcomes and the combined result returned by every runner operation.

A CombinedResult is either a listing (static check definitions) or an
execution report (status and output per check). Both share one container and
render to different JSON shapes:

  listing:    {"<name>": {"description": ..., "cmd": [...], "timeout": "1s"}}
  execution:  {"status": 0, "checks": {"<name>": {"status": 0, "output": "..."}}}
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from check_runner.checks.registry import CheckDefinition

# Outcome status when the result of a check could not be determined
# (killed on timeout, failed to launch). Never a real process exit code.
STATUS_UNKNOWN = -1

STATUS_OK = 0
STATUS_FAILED = 1


class Mode(str, Enum):
    LIST = "list"
    RUN = "run"


# ── Outcomes ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CheckListing:
    """Static definition of a check, as shown by a listing."""

    description: str
    cmd: tuple[str, ...]
    timeout: str

    @classmethod
    def from_definition(cls, check: CheckDefinition) -> CheckListing:
        return cls(description=check.description, cmd=check.cmd, timeout=check.timeout)

    def to_dict(self) -> dict[str, Any]:
        return {"description": self.description, "cmd": list(self.cmd), "timeout": self.timeout}


@dataclass(frozen=True)
class CheckOutcome:
    """Result of executing one check."""

    status: int
    output: str

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "output": self.output}


Outcome = Union[CheckListing, CheckOutcome]


# ── Combined result ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CombinedResult:
    """Outcomes of one runner operation, keyed by check name."""

    mode: Mode
    checks: Mapping[str, Outcome] = field(default_factory=dict)

    def __post_init__(self) -> None:
        expected = CheckListing if self.mode is Mode.LIST else CheckOutcome
        for name, outcome in self.checks.items():
            if not isinstance(outcome, expected):
                raise TypeError(
                    f"check {name}: {type(outcome).__name__} in a {self.mode.value} result"
                )

    @property
    def status(self) -> int:
        """0 when every executed check passed, 1 otherwise.

        Listings never fail.
        """
        if self.mode is Mode.LIST:
            return STATUS_OK
        if all(o.status == STATUS_OK for o in self.checks.values()):  # type: ignore[union-attr]
            return STATUS_OK
        return STATUS_FAILED

    def to_dict(self) -> dict[str, Any]:
        checks = {name: outcome.to_dict() for name, outcome in self.checks.items()}
        if self.mode is Mode.LIST:
            return checks
        return {"status": self.status, "checks": checks}

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def describe(checks: Iterable[CheckDefinition]) -> CombinedResult:
    """Build a listing of the given check definitions."""
    return CombinedResult(
        mode=Mode.LIST,
        checks={c.name: CheckListing.from_definition(c) for c in checks},
    )


def aggregate(outcomes: Mapping[str, CheckOutcome]) -> CombinedResult:
    """Combine per-check execution outcomes into one report."""
    return CombinedResult(mode=Mode.RUN, checks=dict(outcomes))
