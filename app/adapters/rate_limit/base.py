"""Counter store interfaces.

The admission filter depends on this abstraction (not the concrete
implementation) so the in-process store can be swapped for a shared one
(e.g., Redis) when the service runs as several instances.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowCount:
    """Result of an atomic increment-and-read on a window counter.

    Attributes:
        count: Requests observed in the current window, including this one.
        reset_at_ms: UNIX epoch milliseconds when the current window ends.
    """

    count: int
    reset_at_ms: int


class AbstractWindowStore(ABC):
    """Interface for fixed-window counter stores."""

    @abstractmethod
    async def increment(self, key: str, window_ms: int) -> WindowCount:
        """Count one request for ``key`` and return the updated window.

        A window opens on the first request for a key and closes exactly
        ``window_ms`` later; the next request after that opens a new one.

        Args:
            key: Unique counter identifier (e.g., ``api:1.2.3.4``).
            window_ms: Window length in milliseconds.

        Returns:
            WindowCount after the increment.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Drop the counter for ``key``."""
        raise NotImplementedError
