"""Where to start reading a log group that has no saved watermark.

Valid start positions:

- ``"beginning"``: read the group's whole history (start time 0).
- ``"end"``: only read events newer than now.
- an integer ``N``: read back ``N`` seconds from now.

Start positions are validated when the configuration is loaded so that a
bad value stops the process before it polls anything.
"""

from __future__ import annotations

import time
from typing import Any, Optional, Union

from logpoller.lib.errors import ConfigurationError

__all__ = [
    "START_BEGINNING",
    "START_END",
    "StartPosition",
    "now_millis",
    "resolve_start_time",
    "validate_start_position",
]

START_BEGINNING = "beginning"
START_END = "end"

StartPosition = Union[str, int]


def now_millis() -> int:
    return int(time.time() * 1000)


def validate_start_position(value: Any) -> StartPosition:
    """Return the normalised start position or raise ConfigurationError.

    Digit strings (as produced by environment variable expansion) are
    converted to ``int``.
    """
    if value is None:
        raise ConfigurationError("No start_position specified", field="start_position")

    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value

    if isinstance(value, str):
        normalised = value.strip().lower()
        if normalised in (START_BEGINNING, START_END):
            return normalised
        if normalised.isdigit():
            return int(normalised)

    raise ConfigurationError(
        f"start_position '{value}' is invalid",
        field="start_position",
        value=value,
        suggestion="Use `beginning`, `end`, or a non-negative number of seconds.",
    )


def resolve_start_time(start_position: StartPosition, now_ms: Optional[int] = None) -> int:
    """Compute the first query time (ms epoch) for a never-seen group."""
    if now_ms is None:
        now_ms = now_millis()

    if start_position == START_BEGINNING:
        return 0
    if start_position == START_END:
        return now_ms
    if isinstance(start_position, int) and not isinstance(start_position, bool):
        return now_ms - start_position * 1000

    raise ConfigurationError(
        f"start_position '{start_position}' is invalid",
        field="start_position",
        value=start_position,
    )
