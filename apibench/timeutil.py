"""Wall-clock time in integer nanoseconds and conversions from it."""

import time

_NANOS_PER_SECOND = 1_000_000_000.0
_MILLIS_PER_SECOND = 1000.0


def get_time() -> int:
    """Return the current wall-clock time in nanoseconds."""
    return time.time_ns()


def seconds(t: int) -> float:
    """Convert a nanosecond count to seconds."""
    return t / _NANOS_PER_SECOND


def milliseconds(t: int) -> float:
    """Convert a nanosecond count to milliseconds."""
    return t / (_NANOS_PER_SECOND / _MILLIS_PER_SECOND)