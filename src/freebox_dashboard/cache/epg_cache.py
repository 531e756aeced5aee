"""EPG cache: time-bucketed, request-coalescing cache for the program guide.

The box rate-limits its EPG endpoint aggressively, while the TV page asks for
"now" every time it scrolls or refreshes. Request timestamps are floored to a
fixed 2-hour grid (00:00, 02:00, 04:00, ...) so every request inside a window
shares one cache key, and one upstream call serves the whole window for the
TTL.

Only successful envelopes are cached. Failures go back to the caller
unchanged and the next request tries again.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

EPG_BUCKET_SECONDS = 2 * 60 * 60
EPG_CACHE_TTL_SECONDS = 2 * 60 * 60
EPG_CACHE_SOFT_LIMIT = 20

Envelope = Dict[str, Any]
EpgFetcher = Callable[[int], Awaitable[Envelope]]


def normalize_epg_timestamp(timestamp: int, bucket_seconds: int = EPG_BUCKET_SECONDS) -> int:
    """Floor a unix timestamp to the start of its bucket."""
    return (int(timestamp) // bucket_seconds) * bucket_seconds


class _EpgEntry:
    __slots__ = ("data", "fetched_at")

    def __init__(self, data: Envelope, fetched_at: float):
        self.data = data
        self.fetched_at = fetched_at


class EpgCache:
    """Bucketed EPG cache in front of an upstream fetcher.

    Concurrent misses on the same bucket share one upstream call. Eviction
    piggybacks on inserts: once the map grows past ``soft_limit`` entries,
    every expired entry is swept.
    """

    def __init__(
        self,
        fetcher: EpgFetcher,
        ttl: float = EPG_CACHE_TTL_SECONDS,
        bucket_seconds: int = EPG_BUCKET_SECONDS,
        soft_limit: int = EPG_CACHE_SOFT_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self._fetcher = fetcher
        self._ttl = ttl
        self._bucket_seconds = bucket_seconds
        self._soft_limit = soft_limit
        self._clock = clock
        self._entries: Dict[int, _EpgEntry] = {}
        self._pending: Dict[int, "asyncio.Future[Envelope]"] = {}
        self.upstream_calls = 0

    def bucket_for(self, timestamp: int) -> int:
        return normalize_epg_timestamp(timestamp, self._bucket_seconds)

    def _is_valid(self, entry: _EpgEntry, now: float) -> bool:
        return now - entry.fetched_at < self._ttl

    async def fetch(self, timestamp: int) -> Envelope:
        """Return the EPG envelope for the bucket containing ``timestamp``."""
        bucket = self.bucket_for(timestamp)

        entry = self._entries.get(bucket)
        if entry is not None and self._is_valid(entry, self._clock()):
            return entry.data

        pending = self._pending.get(bucket)
        if pending is not None:
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch_upstream(bucket))
        self._pending[bucket] = task
        task.add_done_callback(lambda t: self._forget_pending(bucket, t))
        return await asyncio.shield(task)

    def _forget_pending(self, bucket: int, task: "asyncio.Future[Envelope]") -> None:
        if self._pending.get(bucket) is task:
            del self._pending[bucket]

    async def _fetch_upstream(self, bucket: int) -> Envelope:
        self.upstream_calls += 1
        result = await self._fetcher(bucket)

        if result and result.get("success"):
            self._entries[bucket] = _EpgEntry(result, self._clock())
            if len(self._entries) > self._soft_limit:
                removed = self.sweep()
                if removed:
                    logger.debug("EPG cache swept %d expired entries", removed)
        else:
            logger.debug("EPG fetch for %d failed, not cached", bucket)

        return result

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop every entry older than the TTL. Returns the number removed."""
        now = self._clock() if now is None else now
        expired = [b for b, e in self._entries.items() if now - e.fetched_at > self._ttl]
        for bucket in expired:
            del self._entries[bucket]
        return len(expired)

    def clear(self) -> int:
        n = len(self._entries)
        self._entries.clear()
        return n

    @property
    def size(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "pending": len(self._pending),
            "upstream_calls": self.upstream_calls,
            "ttl_seconds": self._ttl,
            "bucket_seconds": self._bucket_seconds,
        }
