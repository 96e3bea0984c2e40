"""Injectable wall clock.

Expiry checks, rate-limit windows, and poll deadlines all read time through a
:class:`Clock` so tests can drive them without sleeping.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable returning *milliseconds* since the UNIX epoch."""

    def __call__(self) -> int: ...


def system_clock() -> int:
    """Current time in epoch milliseconds."""
    return time.time_ns() // 1_000_000
