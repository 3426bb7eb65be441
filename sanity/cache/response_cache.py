"""TTL key/value cache backing entity reads, with prefix invalidation.

Entries expire lazily on read; there is no background sweep and no push
invalidation, so the worst-case staleness of an entry that missed an
invalidation is its TTL.

Key layout::

    test-runs                 list of runs (embeds connector counts)
    test-run:<run_id>         run detail
    connectors:<run_id>       connector list of a run (embeds component counts)
    connector:<connector_id>  connector detail
    components:<connector_id> component list of a connector
    report:<run_id>           run report
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class CacheKeys:
    TEST_RUNS = "test-runs"

    @staticmethod
    def test_run(run_id: str) -> str:
        return f"test-run:{run_id}"

    @staticmethod
    def connectors(run_id: str) -> str:
        return f"connectors:{run_id}"

    @staticmethod
    def connector(connector_id: str) -> str:
        return f"connector:{connector_id}"

    @staticmethod
    def components(connector_id: str) -> str:
        return f"components:{connector_id}"

    @staticmethod
    def report(run_id: str) -> str:
        return f"report:{run_id}"


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class ResponseCache:
    """In-process TTL cache.

    All reads and writes go through one lock so an invalidation can never
    interleave with the check-then-delete of an expired entry.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._store[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._store[key] = CacheEntry(key, value, self._clock() + ttl)

    def get_or_load(
        self, key: str, loader: Callable[[], Any], ttl_seconds: float | None = None
    ) -> Any:
        """Return the cached value, loading and storing it on a miss.

        ``None`` results are not cached.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        if value is not None:
            self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._store if k.startswith(prefix)]:
                del self._store[key]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    # -- invalidation cascade ---------------------------------------------

    def invalidate_component_views(self, connector_id: str, run_id: str) -> None:
        """Invalidate every view that embeds a component of ``connector_id``."""
        self.invalidate(CacheKeys.components(connector_id))
        self.invalidate_connector_views(connector_id, run_id)

    def invalidate_connector_views(self, connector_id: str, run_id: str) -> None:
        """Invalidate a connector's detail and every ancestor aggregate."""
        self.invalidate(CacheKeys.connector(connector_id))
        self.invalidate(CacheKeys.connectors(run_id))
        self.invalidate_test_run_views(run_id)

    def invalidate_test_run_views(self, run_id: str) -> None:
        self.invalidate(CacheKeys.test_run(run_id))
        self.invalidate(CacheKeys.report(run_id))
        self.invalidate(CacheKeys.TEST_RUNS)


def safe_invalidate(action: Callable[[], None], description: str) -> bool:
    """Run an invalidation without letting a failure escape.

    The mutation it follows has already been committed; a missed
    invalidation heals when the entry's TTL runs out.
    """
    try:
        action()
    except Exception:
        logger.warning("Cache invalidation failed for %s", description, exc_info=True)
        return False
    return True
