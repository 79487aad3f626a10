"""Caches for mesh discovery data.

Both caches are plain objects owned by a :class:`ToolCatalog`, not
module globals. Each guards refreshes with an :class:`asyncio.Lock`, so
concurrent stale reads coalesce into one outbound request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


class TtlCache(Generic[T]):
    """A single value that goes stale *ttl* seconds after it was stored.

    Staleness never blocks a reader on anything but the refetch itself,
    and a failed refetch falls back to the stale value when one exists.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl
        self._clock = clock
        self._value: T | None = None
        self._stored_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def is_fresh(self) -> bool:
        if self._stored_at is None:
            return False
        return self._clock() - self._stored_at < self._ttl

    def get(self) -> T | None:
        """Return the value if fresh, else None."""
        return self._value if self.is_fresh else None

    def peek(self) -> T | None:
        """Return the last stored value, fresh or not."""
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._value = None
        self._stored_at = None

    async def get_or_fetch(self, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the fresh value, refetching through *fetch* when stale.

        Raises:
            Exception: Whatever *fetch* raised, if there is no stale value
                to fall back to.
        """
        fresh = self.get()
        if fresh is not None:
            return fresh

        async with self._lock:
            fresh = self.get()
            if fresh is not None:
                return fresh
            try:
                value = await fetch()
            except Exception as exc:
                stale = self.peek()
                if stale is None:
                    raise
                logger.warning("Refresh failed, serving stale value: %s", exc)
                return stale
            self.set(value)
            return value


class MemoCache(Generic[T]):
    """Keyed values kept for the lifetime of the owner.

    Failed fetches (``None`` results or exceptions) are not stored, so the
    next access tries again.
    """

    def __init__(self) -> None:
        self._values: dict[str, T] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def get(self, key: str) -> T | None:
        return self._values.get(key)

    def set(self, key: str, value: T) -> None:
        self._values[key] = value

    def clear(self) -> None:
        self._values.clear()

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T | None]],
    ) -> T | None:
        if key in self._values:
            return self._values[key]

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if key in self._values:
                return self._values[key]
            value = await fetch()
            if value is not None:
                self._values[key] = value
            return value
