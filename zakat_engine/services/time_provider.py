"""Time provider abstraction for testable timestamps.

All times in this module are UTC epoch seconds. Price freshness, snapshot
timestamps and conversion records all read the clock through here so tests
can freeze it.
"""
import time
from typing import Optional


class TimeProvider:
    """Provides the current time, allowing tests to freeze it.

    Usage:
        # Production: uses the real clock
        provider = TimeProvider()
        now = provider.now()

        # Testing: freeze to a specific instant
        provider = TimeProvider(frozen_at=1768471200.0)
        now = provider.now()  # Always returns 1768471200.0
    """

    _instance: Optional['TimeProvider'] = None

    def __init__(self, frozen_at: Optional[float] = None):
        """Initialize TimeProvider.

        Args:
            frozen_at: If provided, now() returns this epoch second until
                       advanced. If None, returns the real time.
        """
        self._frozen_at = frozen_at

    def now(self) -> float:
        """Get current UTC epoch seconds."""
        if self._frozen_at is not None:
            return self._frozen_at
        return time.time()

    def advance(self, seconds: float) -> None:
        """Move a frozen clock forward."""
        if self._frozen_at is None:
            raise RuntimeError("Only a frozen TimeProvider can be advanced")
        self._frozen_at += seconds

    @classmethod
    def get_default(cls) -> 'TimeProvider':
        """Get the default TimeProvider instance (singleton for production)."""
        if cls._instance is None:
            cls._instance = TimeProvider()
        return cls._instance

    @classmethod
    def set_default(cls, provider: 'TimeProvider') -> None:
        """Set the default TimeProvider (for testing)."""
        cls._instance = provider

    @classmethod
    def reset_default(cls) -> None:
        """Reset to production TimeProvider."""
        cls._instance = None


def get_now(time_provider: Optional[TimeProvider] = None) -> float:
    """Convenience function to get the current epoch seconds."""
    if time_provider is None:
        time_provider = TimeProvider.get_default()
    return time_provider.now()
