"""Duration strings in the short form used by check configs ("1s", "500ms", "1m30s").

Timeouts are parsed once and rendered back in canonical form, so "1000ms"
and "1s" list the same.
"""

from __future__ import annotations

import re

_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse a duration string and return it in seconds.

    Raises ``ValueError`` for anything that is not a sequence of
    ``<number><unit>`` components.
    """
    if not isinstance(text, str):
        raise ValueError(f"duration must be a string, got {type(text).__name__}")

    value = text.strip()
    if value == "0":
        return 0.0
    if not value:
        raise ValueError("empty duration")

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _COMPONENT.match(value, pos)
        if not match:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return total


_NS_PER_SECOND = 1_000_000_000


def format_duration(seconds: float) -> str:
    """Render seconds in canonical short form: 1.0 -> "1s", 90 -> "1m30s", 0.5 -> "500ms"."""
    ns = round(seconds * _NS_PER_SECOND)
    if ns == 0:
        return "0s"
    if ns < 1_000:
        return f"{ns}ns"
    if ns < 1_000_000:
        return _with_fraction(ns, 1_000) + "µs"
    if ns < _NS_PER_SECOND:
        return _with_fraction(ns, 1_000_000) + "ms"

    whole_seconds, frac = divmod(ns, _NS_PER_SECOND)
    minutes, secs = divmod(whole_seconds, 60)
    hours, minutes = divmod(minutes, 60)
    text = _with_fraction(secs * _NS_PER_SECOND + frac, _NS_PER_SECOND) + "s"
    if hours:
        return f"{hours}h{minutes}m{text}"
    if minutes:
        return f"{minutes}m{text}"
    return text


def _with_fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    digits = f"{rest:0{len(str(unit)) - 1}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)
