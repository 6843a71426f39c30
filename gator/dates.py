"""
Normalization of the published-date strings found in feed items.

Formats are tried in a fixed order and the first match wins:

1. RFC 1123 with a numeric zone   ``Mon, 02 Jan 2006 15:04:05 -0700``
2. RFC 1123 with a named zone     ``Mon, 02 Jan 2006 15:04:05 MST``
3. RFC 3339                       ``2006-01-02T15:04:05Z``
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

_RFC1123 = "%a, %d %b %Y %H:%M:%S"
_RFC1123Z = _RFC1123 + " %z"
_RFC3339 = ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z")

# RFC 822 zone names. Anything else alphabetic is read as UTC.
_NAMED_ZONES = {
    "UT": 0,
    "UTC": 0,
    "GMT": 0,
    "Z": 0,
    "EST": -5,
    "EDT": -4,
    "CST": -6,
    "CDT": -5,
    "MST": -7,
    "MDT": -6,
    "PST": -8,
    "PDT": -7,
}


class UnrecognizedDateFormat(ValueError):
    """No accepted format matched the date string."""

    def __init__(self, raw: str):
        super().__init__(f"unsupported date format: {raw!r}")
        self.raw = raw


def _rfc1123_numeric(value: str) -> datetime:
    return datetime.strptime(value, _RFC1123Z)


def _rfc1123_named(value: str) -> datetime:
    stamp, _, zone = value.rpartition(" ")
    if not zone.isalpha():
        raise ValueError(f"not a zone name: {zone!r}")
    offset = _NAMED_ZONES.get(zone.upper(), 0)
    parsed = datetime.strptime(stamp, _RFC1123)
    return parsed.replace(tzinfo=timezone(timedelta(hours=offset), zone.upper()))


def _rfc3339(value: str) -> datetime:
    for fmt in _RFC3339:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError(f"not RFC 3339: {value!r}")


_PARSERS: tuple[Callable[[str], datetime], ...] = (
    _rfc1123_numeric,
    _rfc1123_named,
    _rfc3339,
)


def parse_published_date(raw: str) -> datetime:
    """
    Return the timezone-aware instant described by ``raw``.

    Raises UnrecognizedDateFormat when none of the accepted formats match.
    """
    value = (raw or "").strip()
    if value:
        for parser in _PARSERS:
            try:
                return parser(value)
            except ValueError:
                continue
    raise UnrecognizedDateFormat(raw)
