"""Human-readable duration formatting and parsing.

``format_duration`` renders milliseconds with the largest non-zero unit
leading (``1h 5m``, ``4m 10s``, ``12s``). ``parse_duration`` reads the same
text back, so ``parse_duration(format_duration(ms))`` is ``ms`` truncated to
the displayed precision.
"""

import re

from cash_clearing.core.errors import InvalidInputError

_DURATION_PATTERN = re.compile(
    r"^\s*(?:(?P<hours>\d+)h)?\s*(?:(?P<minutes>\d+)m)?\s*(?:(?P<seconds>\d+)s)?\s*$"
)


def format_duration(ms: float) -> str:
    """Format a millisecond duration.

    Args:
        ms: Non-negative duration in milliseconds.

    Returns:
        Formatted duration string.

    Raises:
        InvalidInputError: If the duration is negative.
    """
    if ms < 0:
        raise InvalidInputError("Duration cannot be negative", field="ms", value=ms)

    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def parse_duration(text: str) -> int:
    """Parse a duration produced by :func:`format_duration` into milliseconds.

    Raises:
        InvalidInputError: If the text is empty or not a duration.
    """
    match = _DURATION_PATTERN.match(text or "")
    if not match or not any(match.groupdict().values()):
        raise InvalidInputError(f"Unrecognised duration: {text!r}", field="duration", value=text)

    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = int(match.group("seconds") or 0)
    return (hours * 3600 + minutes * 60 + seconds) * 1000


def truncate_to_display(ms: float) -> int:
    """Truncate a duration to the precision :func:`format_duration` shows."""
    seconds = int(ms // 1000)
    if seconds >= 3600:
        return (seconds // 60) * 60 * 1000
    return seconds * 1000
