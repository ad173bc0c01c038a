"""
Clock abstraction shared by time-dependent components.

A clock is any zero-argument callable returning the current time as unix
seconds. Components take one at construction and never read wall-clock time
directly, so tests can move time forward deterministically.
"""

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]

system_clock: Clock = time.time


def to_datetime(timestamp: float) -> datetime:
    """Convert unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
