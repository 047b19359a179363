"""Timestamp parsing and formatting for storyboard prompts.

Prompt timestamps on the wire are always zero-padded ``MM:SS``. Models and
subtitle tooling hand us several other shapes, so parsing is lenient while
formatting is strict.
"""

from __future__ import annotations

import re

_MM_SS = re.compile(r"^\d{2}:\d{2}$")
_CLOCK = re.compile(
    r"^\s*\[?\s*(\d{1,3}):(\d{1,2})(?::(\d{1,3}))?(?:[.,](\d{1,3}))?\s*\]?\s*$"
)
_INLINE = re.compile(r"\[?\b(\d{1,2}:\d{2}(?::\d{2})?)\b\]?")


def is_wire_timestamp(value: object) -> bool:
    """True when ``value`` is already a zero-padded ``MM:SS`` string."""
    if not isinstance(value, str) or not _MM_SS.match(value):
        return False
    return int(value[3:]) < 60


def parse_timestamp(text: object) -> float | None:
    """Parse a timestamp into seconds.

    Accepts ``MM:SS``, ``HH:MM:SS``, ``MM:SS:mmm`` and SRT ``HH:MM:SS,mmm``.
    Returns None for anything unparseable instead of raising.
    """
    if isinstance(text, bool):
        return None
    if isinstance(text, int | float):
        return float(text) if text >= 0 else None
    if not isinstance(text, str):
        return None

    match = _CLOCK.match(text)
    if not match:
        return None
    first, second, third, fraction = match.groups()

    if third is None:
        minutes, seconds = int(first), int(second)
        if seconds >= 60:
            return None
        total = minutes * 60 + seconds
    elif len(third) == 3 and fraction is None:
        # MM:SS:mmm
        minutes, seconds = int(first), int(second)
        if seconds >= 60:
            return None
        return minutes * 60 + seconds + int(third) / 1000
    else:
        hours, minutes, seconds = int(first), int(second), int(third)
        if minutes >= 60 or seconds >= 60:
            return None
        total = hours * 3600 + minutes * 60 + seconds

    if fraction is not None:
        return total + int(fraction.ljust(3, "0")) / 1000
    return float(total)


def format_timestamp(seconds: float) -> str:
    """Format seconds as zero-padded ``MM:SS``; minutes may exceed 59."""
    whole = max(0, int(seconds))
    minutes, secs = divmod(whole, 60)
    return f"{minutes:02d}:{secs:02d}"


def normalize_timestamp(value: object) -> str | None:
    """Return ``value`` as a wire timestamp, or None when it cannot be read."""
    if is_wire_timestamp(value):
        return value  # type: ignore[return-value]
    seconds = parse_timestamp(value)
    return None if seconds is None else format_timestamp(seconds)


def find_inline_timestamp(text: str) -> str | None:
    """Find the first timestamp embedded in prose, e.g. ``[01:15] A wide shot``."""
    match = _INLINE.search(text)
    if not match:
        return None
    return normalize_timestamp(match.group(1))
