"""Error types raised by the check runner core."""

from __future__ import annotations


class CheckRunnerError(Exception):
    """Base class for all check runner errors."""


class InvalidRoleError(CheckRunnerError):
    """Raised when a runner is constructed with an unsupported role."""

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"invalid role {role!r}, must be one of: master, agent")


class ConfigError(CheckRunnerError):
    """Raised when a check configuration cannot be read or is invalid.

    The previously loaded configuration stays in effect.
    """


class CheckNotFoundError(CheckRunnerError):
    """Raised when a requested check does not exist for the phase and role."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"check {name} not found")


class LaunchError(CheckRunnerError):
    """Raised when a check command cannot be started."""


class TimeoutKillError(CheckRunnerError):
    """Raised when a check command overruns its timeout and is killed."""
