"""Parsing of timestamps printed by container runtimes."""

from __future__ import annotations

import re
from datetime import datetime

NO_VALUE = "<no value>"

_TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[T ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?\s*(Z|[+-]\d{2}:?\d{2})?"
)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a runtime timestamp into an aware :class:`datetime`.

    Accepts RFC 3339 with nanoseconds (``2024-01-01T12:00:00.123456789Z``)
    and the ``2024-01-15 10:30:00 +0000 UTC`` style. Missing offsets are
    taken as UTC. The zero time (year 1), ``<no value>`` and anything
    unparseable map to ``None``.
    """
    if not value:
        return None
    text = value.strip()
    if not text or text == NO_VALUE:
        return None

    match = _TIMESTAMP_PATTERN.match(text)
    if not match:
        return None

    date, clock, fraction, offset = match.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    if offset is None or offset == "Z":
        offset = "+00:00"
    elif ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"

    try:
        parsed = datetime.fromisoformat(f"{date}T{clock}.{micros}{offset}")
    except ValueError:
        return None
    if parsed.year <= 1:
        return None
    return parsed
