"""Duration parsing in the ``1h30m`` / ``5s`` / ``500ms`` notation."""

from __future__ import annotations

import math
import re
from decimal import Decimal
from typing import TYPE_CHECKING

from loadpace._internal.errors import InvalidProfile

if TYPE_CHECKING:
    from loadpace._internal.types import DurationLike

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_GROUP_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_FULL_RE = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|h|m|s))+")


def parse_duration(value: DurationLike, name: str = "duration") -> float:
    """Convert a duration to seconds.

    Numbers are taken as seconds. Strings are one or more
    ``<number><unit>`` groups, units being ``ms``, ``s``, ``m`` and ``h``;
    a bare numeric string is also taken as seconds.

    Args:
        value: The duration to convert.
        name: Field name used in error messages.

    Returns:
        The duration in seconds (never negative).

    Raises:
        InvalidProfile: If the value is malformed, negative or not finite.

    Example::

        parse_duration("1m30s")  # 90.0
        parse_duration("500ms")  # 0.5
        parse_duration(2)        # 2.0
    """
    if isinstance(value, bool):
        msg = f"{name} must be a number of seconds or a duration string, got: {value!r}"
        raise InvalidProfile(msg)

    if isinstance(value, int | float):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        if not text:
            msg = f"{name} must not be empty"
            raise InvalidProfile(msg)
        try:
            seconds = float(text)
        except ValueError:
            if not _FULL_RE.fullmatch(text):
                msg = f"{name} is not a valid duration: {value!r} (expected e.g. '30s', '1m30s', '500ms')"
                raise InvalidProfile(msg) from None
            seconds = sum(
                float(number) * _UNIT_SECONDS[unit] for number, unit in _GROUP_RE.findall(text)
            )
    else:
        msg = f"{name} must be a number of seconds or a duration string, got: {value!r}"
        raise InvalidProfile(msg)

    if not math.isfinite(seconds) or seconds < 0:
        msg = f"{name} must be a finite, non-negative duration, got: {value!r}"
        raise InvalidProfile(msg)
    return seconds


def format_duration(seconds: float) -> str:
    """Render seconds in the compact notation accepted by :func:`parse_duration`.

    The result always parses back to exactly *seconds*. When the compact
    form would lose precision (e.g. ``0.0004`` or ``1.0004``), the plain
    decimal number of seconds is used instead.

    Args:
        seconds: Non-negative number of seconds.

    Returns:
        A string such as ``"1h30m"``, ``"5s"``, ``"250ms"`` or ``"1.0004s"``.
    """
    compact = _compact(seconds)
    if parse_duration(compact) == seconds:
        return compact
    return f"{Decimal(repr(float(seconds))):f}s"


def _compact(seconds: float) -> str:
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"

    whole = int(seconds)
    fraction = seconds - whole
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if fraction >= 0.001:
        parts.append(f"{secs + fraction:g}s")
    elif secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)
