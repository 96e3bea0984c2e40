"""Sliding-window rate limiting for authentication attempts.

Each identifier (a user, a session, a CLI profile) gets its own window. Once
an identifier exceeds ``max_attempts`` inside ``window_ms`` it is locked out
for ``lockout_ms``. Idle entries are swept lazily on access, at most once per
sweep interval, so the limiter needs no background task.
"""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from typing import Optional

from qwen_auth.clock import Clock, system_clock
from qwen_auth.constants import RATE_LIMIT_SWEEP_INTERVAL_MS
from qwen_auth.models import RateLimitConfig, RateLimitInfo

logger = logging.getLogger(__name__)


@dataclass
class RateLimitState:
    attempts: int
    window_start: int
    locked_until: Optional[int] = None


class RateLimiter:
    """Per-identifier attempt counter with lockout.

    All timestamps are epoch milliseconds from the injected *clock*. A lock
    guards the state map, so one limiter may be shared between threads.

    Args:
        config: Limits to apply; defaults to 5 attempts per minute with a
            five-minute lockout.
        clock: Millisecond clock, replaceable in tests.
        sweep_interval_ms: Minimum gap between evictions of idle entries.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Clock = system_clock,
        sweep_interval_ms: int = RATE_LIMIT_SWEEP_INTERVAL_MS,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._sweep_interval_ms = sweep_interval_ms
        self._states: dict[str, RateLimitState] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._states)

    # -- internals (caller holds the lock) --

    def _window_expired(self, state: RateLimitState, now: int) -> bool:
        return now - state.window_start > self._config.window_ms

    def _locked(self, state: RateLimitState, now: int) -> bool:
        return state.locked_until is not None and now < state.locked_until

    def _current(self, identifier: str, now: int) -> Optional[RateLimitState]:
        """Return live state for *identifier*, dropping it if it has lapsed."""
        state = self._states.get(identifier)
        if state is None:
            return None
        if self._locked(state, now):
            return state
        if state.locked_until is not None or self._window_expired(state, now):
            del self._states[identifier]
            return None
        return state

    def _maybe_sweep(self, now: int) -> None:
        if now - self._last_sweep >= self._sweep_interval_ms:
            self._sweep(now)

    def _sweep(self, now: int) -> int:
        stale = [
            key
            for key, state in self._states.items()
            if self._window_expired(state, now) and not self._locked(state, now)
        ]
        for key in stale:
            del self._states[key]
        self._last_sweep = now
        if stale:
            logger.debug("Evicted %d idle rate-limit entries", len(stale))
        return len(stale)

    # -- public API --

    def record_attempt(self, identifier: str) -> bool:
        """Count an attempt. Returns False if the identifier is (now) locked out."""
        if not self._config.enabled:
            return True
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            state = self._current(identifier, now)
            if state is not None and self._locked(state, now):
                return False
            if state is None:
                state = RateLimitState(attempts=0, window_start=now)
                self._states[identifier] = state
            state.attempts += 1
            if state.attempts > self._config.max_attempts:
                state.locked_until = now + self._config.lockout_ms
                logger.warning(
                    "Rate limit exceeded; locked out for %s",
                    format_duration(self._config.lockout_ms),
                )
                return False
            return True

    def is_rate_limited(self, identifier: str) -> bool:
        """True while locked out, or when the current window is already full."""
        if not self._config.enabled:
            return False
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)
            state = self._current(identifier, now)
            if state is None:
                return False
            return self._locked(state, now) or state.attempts >= self._config.max_attempts

    def reset(self, identifier: str) -> None:
        """Forget all attempts for *identifier* (after a successful login)."""
        with self._lock:
            self._states.pop(identifier, None)

    def sweep(self) -> int:
        """Evict every entry whose window and lockout have both elapsed.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            return self._sweep(self._clock())

    def get_remaining_attempts(self, identifier: str) -> int:
        if not self._config.enabled:
            return sys.maxsize
        with self._lock:
            now = self._clock()
            state = self._current(identifier, now)
            if state is None:
                return self._config.max_attempts
            if self._locked(state, now):
                return 0
            return max(0, self._config.max_attempts - state.attempts)

    def get_lockout_remaining(self, identifier: str) -> int:
        """Milliseconds until the lockout for *identifier* ends (0 if none)."""
        with self._lock:
            state = self._states.get(identifier)
            if state is None or state.locked_until is None:
                return 0
            return max(0, state.locked_until - self._clock())

    def get_info(self, identifier: str) -> RateLimitInfo:
        is_limited = self.is_rate_limited(identifier)
        remaining = self.get_remaining_attempts(identifier)
        lockout_remaining = self.get_lockout_remaining(identifier)
        with self._lock:
            state = self._states.get(identifier)
            window_remaining = self._config.window_ms
            if state is not None:
                elapsed = self._clock() - state.window_start
                window_remaining = max(0, self._config.window_ms - elapsed)
        return RateLimitInfo(
            is_limited=is_limited,
            remaining_attempts=remaining,
            lockout_remaining_ms=lockout_remaining,
            window_remaining_ms=window_remaining,
        )


def format_duration(ms: int) -> str:
    """Render a millisecond duration for humans: ``850ms``, ``5s``, ``2m 5s``, ``1h 3m``."""
    if ms < 1000:
        return f"{ms}ms"
    seconds = -(-ms // 1000)
    if seconds < 60:
        return f"{seconds}s"
    minutes, rem_seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {rem_seconds}s" if rem_seconds else f"{minutes}m"
    hours, rem_minutes = divmod(minutes, 60)
    return f"{hours}h {rem_minutes}m" if rem_minutes else f"{hours}h"
