import re
from datetime import datetime, timezone
from typing import Optional

_DURATION_PATTERN = re.compile(r"^(\d+)([mhdw])$", re.IGNORECASE)

DURATION_UNITS_MS = {
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
}


def parse_duration(text: str) -> Optional[int]:
    """Parse a short duration such as ``"30m"``, ``"1h"``, ``"2d"`` or ``"1w"``.

    Args:
        text: Number followed by one unit letter (m, h, d, w), case-insensitive.

    Returns:
        The duration in milliseconds, or None when the text is malformed or zero.
    """
    match = _DURATION_PATTERN.match((text or "").strip())
    if not match:
        return None
    milliseconds = int(match.group(1)) * DURATION_UNITS_MS[match.group(2).lower()]
    return milliseconds or None


def format_duration(milliseconds: int) -> str:
    """Render a millisecond duration using its largest whole unit, e.g. ``"2 day(s)"``."""
    seconds = int(milliseconds) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days} day(s)"
    if hours > 0:
        return f"{hours} hour(s)"
    if minutes > 0:
        return f"{minutes} minute(s)"
    return f"{seconds} second(s)"


def humanize_timestamp(value: datetime) -> str:
    """Return a human-readable timestamp (YYYY-MM-DD HH:MM:SS) in UTC.

    Naive datetimes are assumed to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")
