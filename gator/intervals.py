"""
Duration strings for the polling interval.

Accepts the compact form used on the command line: one or more
``<number><unit>`` groups, e.g. ``"30s"``, ``"1m"``, ``"1h30m"``, ``"1.5s"``.
"""

import re
from datetime import timedelta

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

# Largest duration a signed 64-bit nanosecond count can hold (~292 years).
_LONGEST = timedelta(microseconds=(2**63 - 1) // 1000)

_GROUP = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class InvalidIntervalError(ValueError):
    """Raised for malformed, non-positive or out-of-range duration strings."""


def parse_interval(text: str) -> timedelta:
    """Parse a duration string into a positive timedelta."""
    value = (text or "").strip()
    if not value:
        raise InvalidIntervalError("interval is empty; expected something like '30s' or '1m'")

    seconds = 0.0
    pos = 0
    while pos < len(value):
        match = _GROUP.match(value, pos)
        if match is None:
            raise InvalidIntervalError(
                f"invalid interval {text!r}; expected something like '30s', '1m' or '1h30m'"
            )
        number, unit = match.groups()
        seconds += float(number) * _UNITS[unit]
        pos = match.end()

    try:
        interval = timedelta(seconds=seconds)
    except OverflowError:
        raise InvalidIntervalError(f"interval too large: {text!r}") from None
    if interval > _LONGEST:
        raise InvalidIntervalError(f"interval too large: {text!r}")
    if interval <= timedelta(0):
        raise InvalidIntervalError(
            f"interval must be positive (at least 1us), got {text!r}"
        )
    return interval
