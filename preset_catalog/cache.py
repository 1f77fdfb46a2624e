"""
Bounded LRU cache and in-flight request coalescing.

``BoundedCache`` holds parsed preset descriptors and decoded audio buffers.
``InFlight`` makes concurrent first-time loads of the same resource share a
single fetch instead of each issuing their own.
"""

import asyncio
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

from loguru import logger

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
T = TypeVar("T")

_MISSING = object()


class BoundedCache(Generic[K, V]):
    """
    Size-bounded mapping with least-recently-used eviction.

    Entries are kept in an ``OrderedDict`` ordered from least to most recently
    used.  A hit on ``get`` moves the key to the end; ``set`` on a new key at
    capacity drops exactly one entry from the front.  Nothing expires by time.
    """

    def __init__(self, max_size: int, name: str = "cache") -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self._max_size = max_size
        self._name = name
        self._entries: "OrderedDict[K, V]" = OrderedDict()

    def has(self, key: K) -> bool:
        """Membership test; does not change recency."""
        return key in self._entries

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            return default
        self._entries.move_to_end(key)
        return value  # type: ignore[return-value]

    def set(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"{self._name}: evicted {evicted!r}")
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[K]:
        """Keys from least to most recently used."""
        return list(self._entries.keys())

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"BoundedCache({self._name}, {len(self._entries)}/{self._max_size})"


class InFlight:
    """
    Shares one running task per key between concurrent callers.

    The task is forgotten as soon as it finishes, so a failed load is retried
    by the next caller rather than remembered.
    """

    def __init__(self) -> None:
        self._pending: Dict[Hashable, "asyncio.Future[Any]"] = {}

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug(f"Joining in-flight load for {key!r}")
        # One caller being cancelled must not cancel the load for the others.
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, done: "asyncio.Future[Any]") -> None:
        if self._pending.get(key) is done:
            del self._pending[key]
        if not done.cancelled():
            # Mark the exception retrieved; every awaiting caller re-raises it.
            done.exception()

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)
