"""Memoized recursive listing of the source-control repository.

The whole listing for one (user, owner, repo, branch) partition is cached
for a single TTL. There is no per-path invalidation; callers drop a
partition with :meth:`RemoteTreeCache.invalidate` when the repository
settings change.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

TREE_TTL_SECONDS = 5 * 60

TreeKey = tuple[str, str, str, str]
TreeLoader = Callable[[], Awaitable[list[dict[str, Any]]]]


@dataclass
class _TreeEntry:
    tree: list[dict[str, Any]]
    expires_at: float


class RemoteTreeCache:
    def __init__(
        self,
        ttl_seconds: float = TREE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[TreeKey, _TreeEntry] = {}
        self._locks: dict[TreeKey, asyncio.Lock] = {}

    async def get_tree(
        self, user: str, owner: str, repo: str, branch: str, load: TreeLoader
    ) -> list[dict[str, Any]]:
        """Return the cached listing or call ``load`` once to refresh it."""
        key: TreeKey = (user, owner, repo, branch)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                return entry.tree
            tree = await load()
            if self._locks.get(key) is lock:
                self._entries[key] = _TreeEntry(tree, self._clock() + self._ttl)
            return tree

    def invalidate(self, user: str | None = None) -> None:
        """Drop every partition of ``user``, or everything when ``user`` is None.

        Dropped partitions lose their lock as well, so a load already in
        flight does not repopulate them.
        """
        if user is None:
            self.clear()
            return
        for key in [k for k in self._entries if k[0] == user]:
            del self._entries[key]
        for key in [k for k in self._locks if k[0] == user]:
            del self._locks[key]

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()
