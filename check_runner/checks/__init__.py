from check_runner.checks.durations import format_duration, parse_duration
from check_runner.checks.registry import (
    ROLES,
    CheckDefinition,
    Registry,
    load_registry,
    parse_payload,
    read_payload,
)

__all__ = [
    "ROLES",
    "CheckDefinition",
    "Registry",
    "load_registry",
    "format_duration",
    "parse_duration",
    "parse_payload",
    "read_payload",
]
