"""
RFC 3339 timestamp helpers for the archive format.

Archives written by the legacy tool use RFC 3339 with nanosecond precision and
trailing zeros trimmed (``2024-01-01T00:00:00Z``, ``2024-01-01T10:00:00.5+02:00``).
Python datetimes hold microseconds, so parsing truncates anything finer.
"""

import re
from datetime import datetime, timedelta, timezone

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})?$"
)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 / ISO-8601 timestamp into an aware datetime.

    A missing offset is read as UTC.

    Raises:
        ValueError: If the value is not a timestamp

    Examples:
        >>> parse_timestamp("2024-01-01T00:00:00Z")
        datetime.datetime(2024, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    match = _RFC3339.match(value.strip())
    if not match:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")

    base = match.group("base")[:10] + "T" + match.group("base")[11:]
    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset") or "+00:00"
    if offset in ("Z", "z"):
        offset = "+00:00"

    parsed = datetime.fromisoformat(f"{base}.{fraction}{offset}")
    if parsed.utcoffset() == timedelta(0):
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """
    Format a datetime the way the legacy archive does.

    Naive datetimes are taken as UTC. Datetimes carrying a ``nanosecond``
    attribute (Firestore timestamps) keep their full precision.

    Examples:
        >>> format_timestamp(datetime(2024, 1, 1, tzinfo=timezone.utc))
        '2024-01-01T00:00:00Z'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)

    text = value.strftime("%Y-%m-%dT%H:%M:%S")

    nanos = getattr(value, "nanosecond", None)
    if nanos is None:
        nanos = value.microsecond * 1000
    fraction = f"{nanos:09d}".rstrip("0")
    if fraction:
        text += "." + fraction

    offset = value.utcoffset()
    if not offset:
        return text + "Z"

    total_minutes = int(offset.total_seconds()) // 60
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"
