"""Cache of resolved tool lists keyed by enabled servers and user."""

import time
from collections.abc import Callable, Iterable, MutableMapping
from typing import Literal

from cachetools import LRUCache, TTLCache

from agenthub.models.tools import ResolvedTool
from agenthub.utils.logging import get_logger

logger = get_logger(__name__)

EvictionPolicy = Literal["none", "ttl", "lru"]

# (sorted server identifiers, user id)
CacheKey = tuple[tuple[str, ...], str]


class ToolCache:
    """
    Resolved tool lists, one entry per (sorted server set, user).

    Entries are immutable once written. With policy "none" they live for the
    process lifetime; "ttl" and "lru" bound staleness and size.
    """

    def __init__(
        self,
        policy: EvictionPolicy = "ttl",
        ttl: float = 900.0,
        maxsize: int = 512,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy
        self._entries: MutableMapping[CacheKey, tuple[ResolvedTool, ...]]
        if policy == "ttl":
            self._entries = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        elif policy == "lru":
            self._entries = LRUCache(maxsize=maxsize)
        elif policy == "none":
            self._entries = {}
        else:
            raise ValueError(f"Unknown tool cache policy: {policy}")

    @staticmethod
    def key(identifiers: Iterable[str], user_id: str) -> CacheKey:
        """Order-independent key: the sorted, deduplicated identifiers and the user."""
        return tuple(sorted(set(identifiers))), user_id

    def get(self, key: CacheKey) -> list[ResolvedTool] | None:
        entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    def set(self, key: CacheKey, tools: Iterable[ResolvedTool]) -> None:
        self._entries[key] = tuple(tools)

    def invalidate_user(self, user_id: str) -> int:
        """Drops every entry belonging to `user_id`; returns how many were removed."""
        stale = [key for key in list(self._entries) if key[1] == user_id]
        for key in stale:
            self._entries.pop(key, None)
        if stale:
            logger.info("tool_cache_invalidated", user_id=user_id, entries=len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
