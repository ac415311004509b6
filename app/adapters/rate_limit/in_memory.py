"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractWindowStore, WindowCount


@dataclass
class _WindowState:
    window_start_ms: int
    reset_at_ms: int
    count: int


class InMemoryWindowStore(AbstractWindowStore):
    """Counter store keeping one fixed window per key in a dict.

    Each key gets its own window, anchored at the first request seen for it.
    Expired windows are pruned opportunistically so idle clients do not keep
    memory alive.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        prune_every: int = 1000,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            prune_every: Number of increments between expired-entry sweeps.

        Raises:
            ValueError: If prune_every is invalid.
        """
        if prune_every < 1:
            raise ValueError("prune_every must be >= 1")

        self._clock = clock
        self._prune_every = prune_every
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._ops_since_prune = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _prune_expired(self, now_ms: int) -> None:
        """Remove every window that has already elapsed. Caller holds the lock."""
        expired = [
            key for key, state in self._state_by_key.items() if state.reset_at_ms <= now_ms
        ]
        for key in expired:
            del self._state_by_key[key]

    def _get_or_open_window(self, key: str, now_ms: int, window_ms: int) -> _WindowState:
        """Get the live window for key or open a new one when it elapsed.

        Args:
            key: Counter key.
            now_ms: Current time in epoch milliseconds.
            window_ms: Window length in milliseconds.

        Returns:
            The current window state for this key.
        """
        state = self._state_by_key.get(key)
        if state is None or now_ms >= state.reset_at_ms:
            state = _WindowState(
                window_start_ms=now_ms,
                reset_at_ms=now_ms + window_ms,
                count=0,
            )
            self._state_by_key[key] = state
        return state

    async def increment(self, key: str, window_ms: int) -> WindowCount:
        """Count one request for the provided key.

        Raises:
            ValueError: If key is empty or window_ms is invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        now_ms = self._now_ms()

        with self._lock:
            self._ops_since_prune += 1
            if self._ops_since_prune >= self._prune_every:
                self._prune_expired(now_ms)
                self._ops_since_prune = 0

            state = self._get_or_open_window(key, now_ms, window_ms)
            state.count += 1
            return WindowCount(count=state.count, reset_at_ms=state.reset_at_ms)

    async def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)
