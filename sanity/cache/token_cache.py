"""Memoized execution-server access tokens.

Tokens are partitioned by user and by a fingerprint of the configuration
that issued them (base URL + principal). A user who switches to another
server or account gets a fresh token on the next access; the stale entry
is dropped at that moment rather than by a background sweep.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from sanity.config.resolver import ExecutionServerConfig

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 55 * 60

Authenticator = Callable[[ExecutionServerConfig], Awaitable[str]]


def config_fingerprint(*parts: str) -> str:
    """Stable short digest of the identifying configuration fields."""
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
    return digest[:16]


@dataclass
class _TokenEntry:
    fingerprint: str
    token: str
    expires_at: float


class TokenCache:
    """Per-(user, config fingerprint) token memo with a fixed TTL.

    Access for one user is serialized by a per-user lock, so N concurrent
    callers inside a valid window share a single authentication call.
    """

    def __init__(
        self,
        ttl_seconds: float = TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _TokenEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, user: str) -> asyncio.Lock:
        lock = self._locks.get(user)
        if lock is None:
            lock = self._locks[user] = asyncio.Lock()
        return lock

    async def get_token(
        self,
        user: str,
        config: ExecutionServerConfig,
        authenticate: Authenticator,
    ) -> str:
        fingerprint = config_fingerprint(config.base_url, config.username)
        lock = self._lock_for(user)
        async with lock:
            entry = self._entries.get(user)
            if entry is not None and entry.fingerprint != fingerprint:
                del self._entries[user]
                entry = None
            if entry is not None and self._clock() < entry.expires_at:
                return entry.token

            issued_at = self._clock()
            logger.info("Authenticating user %s against %s", user, config.base_url)
            token = await authenticate(config)
            if self._locks.get(user) is lock:
                self._entries[user] = _TokenEntry(fingerprint, token, issued_at + self._ttl)
            return token

    def invalidate(self, user: str) -> None:
        """Forget the user's token.

        The user's lock is dropped too; an authentication still in flight
        under the old lock returns its token to its callers but does not
        cache it.
        """
        self._entries.pop(user, None)
        self._locks.pop(user, None)

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()
