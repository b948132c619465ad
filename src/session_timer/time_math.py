"""Pure helpers converting between seconds, timestamps, and clock strings."""

from __future__ import annotations

import datetime as dt

_ONE_MILLISECOND = dt.timedelta(milliseconds=1)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def seconds_to_clock(seconds: int) -> str:
    """Format a non-negative second count as `hh:mm:ss`."""
    total = int(seconds)
    if total < 0:
        raise ValueError("seconds must be clamped to >= 0 before formatting")
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def add_minutes(timestamp: dt.datetime, minutes: int) -> dt.datetime:
    return timestamp + dt.timedelta(minutes=minutes)


def add_seconds(timestamp: dt.datetime, seconds: int) -> dt.datetime:
    return timestamp + dt.timedelta(seconds=seconds)


def seconds_between(start: dt.datetime, end: dt.datetime) -> int:
    """Whole seconds from `start` to `end`, floored; positive when end is later."""
    millis = (end - start) // _ONE_MILLISECOND
    return millis // 1000


def seconds_until(now: dt.datetime, deadline: dt.datetime) -> int:
    """Whole seconds left before `deadline`, rounded up.

    A countdown keeps showing the last started second until the deadline is
    actually reached, so 0.2s left reads as 1 and 0.0s reads as 0.
    """
    millis = (deadline - now) // _ONE_MILLISECOND
    return -((-millis) // 1000)


def round_down_to(minutes: int, step: int) -> int:
    if step <= 0:
        raise ValueError("step must be greater than zero")
    return (max(0, int(minutes)) // step) * step


def ensure_utc(timestamp: dt.datetime) -> dt.datetime:
    """Interpret naive timestamps as UTC and normalize aware ones to UTC."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=dt.timezone.utc)
    return timestamp.astimezone(dt.timezone.utc)
