"""
backend/oddsline/client/query_cache.py

Purpose:
    Client-side cache of remote query results (fixture listings, current user,
    bet history). Entries are keyed by tuples that mirror the API path, e.g.
    ``("/api/fixtures",)`` and ``("/api/fixtures", "live")``. Invalidation
    marks entries stale by key prefix; the next read refetches.

Dependencies:
    - asyncio
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger("oddsline.client.query_cache")

QueryKey = tuple[str, ...]
Fetcher = Callable[[], Awaitable[Any]]
InvalidationListener = Callable[[QueryKey, list[QueryKey]], None]

FIXTURES_KEY: QueryKey = ("/api/fixtures",)
LIVE_FIXTURES_KEY: QueryKey = ("/api/fixtures", "live")
USER_KEY: QueryKey = ("/api/user",)
USER_BETS_KEY: QueryKey = ("/api/bets", "user")


def key_path(key: QueryKey) -> str:
    """Map a query key back to its API path: ("/api/fixtures", "live") -> "/api/fixtures/live"."""
    return "/".join(key)


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float
    stale: bool = False
    invalidations: int = field(default=0)


class QueryCache:
    def __init__(self, *, stale_after_seconds: float = 0.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._in_flight: dict[QueryKey, asyncio.Future] = {}
        # In-flight keys invalidated before their fetch landed.
        self._invalidated_in_flight: set[QueryKey] = set()
        self._listeners: list[InvalidationListener] = []
        self._stale_after = max(0.0, float(stale_after_seconds))
        self._clock = clock
        self.invalidation_count = 0

    def subscribe(self, listener: InvalidationListener) -> Callable[[], None]:
        """Register a callback fired on every invalidation; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def peek(self, key: QueryKey) -> Any:
        entry = self._entries.get(tuple(key))
        return entry.data if entry else None

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(tuple(key))
        if entry is None or entry.stale:
            return True
        if self._stale_after and self._clock() - entry.fetched_at >= self._stale_after:
            return True
        return False

    def set(self, key: QueryKey, data: Any) -> None:
        self._entries[tuple(key)] = CacheEntry(data=data, fetched_at=self._clock())

    async def get(self, key: QueryKey, fetcher: Fetcher) -> Any:
        """Return cached data, fetching when missing or stale.

        Concurrent reads of the same stale key share one fetch.
        """
        key = tuple(key)
        if not self.is_stale(key):
            return self._entries[key].data

        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._in_flight[key] = future
        self._invalidated_in_flight.discard(key)
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Consume so an unawaited future does not warn.
            future.exception()
            raise
        else:
            self.set(key, data)
            if key in self._invalidated_in_flight:
                self._entries[key].stale = True
            future.set_result(data)
            return data
        finally:
            self._in_flight.pop(key, None)
            self._invalidated_in_flight.discard(key)

    def invalidate(self, prefix: QueryKey) -> int:
        """Mark every entry whose key starts with ``prefix`` as stale.

        Data is kept so views can render it until the refetch lands. A fetch
        still in flight for a matching key stores its result as stale, since
        it may predate the change. Listeners are notified once per call, even
        when nothing was cached yet.
        """
        prefix = tuple(prefix)
        matched = [key for key in self._entries if key[:len(prefix)] == prefix]
        for key in matched:
            entry = self._entries[key]
            entry.stale = True
            entry.invalidations += 1
        self._invalidated_in_flight.update(key for key in self._in_flight if key[:len(prefix)] == prefix)
        self.invalidation_count += 1

        for listener in list(self._listeners):
            try:
                listener(prefix, matched)
            except Exception:
                logger.exception("Query cache listener failed for %s", key_path(prefix))
        return len(matched)
