"""Publication date normalization.

Feeds in the wild use a handful of RFC date layouts. Each layout is tried in
order and the first one that parses wins.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple


class UnparseableTimestamp(ValueError):
    """No known layout matched a publication date."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Can't get a valid time from {value!r}")


# (name, strptime format). A trailing " %Z" marks a named zone, which is
# resolved through ZONE_OFFSETS rather than strptime.
LAYOUTS: List[Tuple[str, str]] = [
    ("RFC822", "%d %b %y %H:%M %Z"),
    ("RFC822Z", "%d %b %y %H:%M %z"),
    ("RFC850", "%A, %d-%b-%y %H:%M:%S %Z"),
    ("RFC1123", "%a, %d %b %Y %H:%M:%S %Z"),
    ("RFC1123Z", "%a, %d %b %Y %H:%M:%S %z"),
    ("RFC3339", "%Y-%m-%dT%H:%M:%S%z"),
    ("RFC3339Nano", "%Y-%m-%dT%H:%M:%S.%f%z"),
]

# RFC 822 section 5.1 zones, in hours from UTC
ZONE_OFFSETS = {
    "UT": 0, "UTC": 0, "GMT": 0, "Z": 0,
    "EST": -5, "EDT": -4,
    "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6,
    "PST": -8, "PDT": -7,
}

_ZONE_NAME = re.compile(r"^[A-Za-z]{1,5}$")
_FRACTION = re.compile(r"\.(\d+)")


def _zone_for(name: str) -> Optional[timezone]:
    if not _ZONE_NAME.match(name):
        return None
    # Unknown abbreviations are accepted with a zero offset.
    hours = ZONE_OFFSETS.get(name.upper(), 0)
    return timezone(timedelta(hours=hours))


def _parse_layout(value: str, fmt: str) -> datetime:
    if fmt.endswith(" %Z"):
        head, _, zone_name = value.rpartition(" ")
        tz = _zone_for(zone_name)
        if not head or tz is None:
            raise ValueError(f"no named zone in {value!r}")
        return datetime.strptime(head, fmt[:-3]).replace(tzinfo=tz)

    if "%f" in fmt:
        # strptime takes at most microseconds; RFC 3339 allows nanoseconds.
        match = _FRACTION.search(value)
        if match is None:
            raise ValueError(f"no fractional seconds in {value!r}")
        value = value[:match.start(1)] + match.group(1)[:6] + value[match.end(1):]
    return datetime.strptime(value, fmt)


def parse_pub_date(value: str) -> datetime:
    """Parse a feed publication date into an aware UTC datetime.

    Raises:
        UnparseableTimestamp: if no layout in ``LAYOUTS`` matches.
    """
    if not isinstance(value, str) or not value.strip():
        raise UnparseableTimestamp(value)

    text = value.strip()
    for _name, fmt in LAYOUTS:
        try:
            parsed = _parse_layout(text, fmt)
        except ValueError:
            continue
        return parsed.astimezone(timezone.utc)

    raise UnparseableTimestamp(value)
