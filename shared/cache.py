"""
In-memory TTL cache used for synthesized speech and other repeatable provider calls.
"""

import time
from typing import Any


class Cache:
    """Simple in-memory cache with TTL (Time To Live) support."""

    def __init__(self, default_ttl: int = 3600) -> None:
        """Initialize empty cache."""
        self.default_ttl = default_ttl
        self._cache: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        """
        Get value from cache by key.

        Args:
            key: Cache key

        Returns:
            Cached value if exists and not expired, None otherwise
        """
        item = self._cache.get(key)
        if item is None:
            return None
        expires_at, value = item
        if time.monotonic() >= expires_at:
            del self._cache[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (defaults to ``default_ttl``)
        """
        effective_ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = (time.monotonic() + effective_ttl, value)

    def delete(self, key: str) -> None:
        """Delete value from cache."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cached values."""
        self._cache.clear()

    def size(self) -> int:
        """Number of stored entries, expired ones included until cleaned up."""
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def cleanup_expired(self) -> int:
        """
        Remove expired items from cache.

        Returns:
            Number of expired items removed
        """
        now = time.monotonic()
        expired_keys = [key for key, (expires_at, _) in self._cache.items() if now >= expires_at]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)
