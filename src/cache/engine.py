"""In-process TTL cache with LRU eviction and memory-pressure bulk eviction."""

import asyncio
import contextlib
import inspect
import logging
import math
import re
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any

from src.cache.keys import estimate_cost, get_ttl_for_operation
from src.cache.metrics import MetricsRecorder
from src.cache.pressure import process_memory_mb
from src.models.cache import CacheConfig, CacheEntry, CacheStats

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any] | Any]

_MEMORY_EVICTION_KEEP_RATIO = 0.75


class AdaptiveCache:
    """Key/value cache with per-entry TTL, bounded size and access statistics.

    The cache knows nothing about what it stores. Callers pass loaders to
    :meth:`preload`. That is the only way the cache reaches a data source.

    All map mutations happen under a re-entrant lock and never await, so the
    cache can be shared between event-loop tasks and worker threads.

    Args:
        config: Size and TTL limits. Defaults to ``CacheConfig()``.
        metrics: Recorder for per-operation hits and misses.
        memory_probe: Returns current memory usage in MB. When it exceeds
            ``config.max_memory_mb`` a quarter of the entries are evicted.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        metrics: MetricsRecorder | None = None,
        memory_probe: Callable[[], float] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or CacheConfig()
        self.metrics = metrics or MetricsRecorder()
        self._memory_probe = memory_probe or process_memory_mb
        self._clock = clock or time.monotonic
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._inflight: dict[str, asyncio.Future] = {}
        self._sweeper: asyncio.Task | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the background sweep. Must be called inside a running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.info(
            "Cache sweep started (every %.1fs)", self.config.cleanup_interval_seconds
        )

    async def shutdown(self) -> None:
        """Cancel the background sweep. Cached entries are left in place."""
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        logger.info("Cache sweep stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def __aenter__(self) -> "AdaptiveCache":
        self.start()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.shutdown()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            removed = self.cleanup()
            if removed:
                logger.debug("Cache sweep removed %d expired entries", removed)

    # ── Reads ────────────────────────────────────────────────────────────────

    def _lookup(self, key: str, operation: str | None) -> tuple[Any, bool]:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and entry.is_expired(now):
                self._store.pop(key, None)
                entry = None
            if entry is not None:
                entry.access_count += 1
                entry.last_accessed_at = now
                value = entry.value

        if entry is None:
            if operation:
                self.metrics.record_miss(operation)
            return None, False

        if operation:
            self.metrics.record_hit(operation, estimate_cost(value))
        return value, True

    def get(self, key: str, operation: str | None = None) -> Any | None:
        """Return the fresh value for *key*, or ``None`` when absent or expired.

        Args:
            key: Cache key.
            operation: Logical operation name to record the hit or miss
                against. Nothing is recorded when omitted.
        """
        value, _ = self._lookup(key, operation)
        return value

    def snapshot(self, key: str) -> CacheEntry | None:
        """Return a detached copy of the entry for *key* without touching it."""
        with self._lock:
            entry = self._store.get(key)
            return entry.model_copy() if entry is not None else None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._store)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    # ── Writes ───────────────────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Insert or overwrite *key*.

        At capacity, the least recently accessed entry is evicted before a new
        key is inserted. Afterwards, if the memory probe reports usage above
        ``max_memory_mb``, the oldest-accessed quarter of the entries is
        dropped. The key just written is never part of that bulk eviction.
        """
        now = self._clock()
        ttl_seconds = ttl if ttl is not None else self.config.default_ttl_seconds
        with self._lock:
            if key not in self._store and len(self._store) >= self.config.max_entries:
                self._evict_least_recently_used()
            self._store[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                ttl_seconds=ttl_seconds,
                access_count=0,
                last_accessed_at=now,
            )
            self._check_memory_pressure(protect=key)

    def delete(self, key: str) -> bool:
        with self._lock:
            self._inflight.pop(key, None)
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._inflight.clear()
        logger.info("Cache cleared")

    def _evict_least_recently_used(self) -> None:
        if not self._store:
            return
        victim = min(self._store.values(), key=lambda e: e.last_accessed_at)
        del self._store[victim.key]
        logger.debug("Evicted least recently used cache key %s", victim.key)

    def _read_memory_usage(self) -> float:
        try:
            return float(self._memory_probe())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Memory probe failed: %s", exc)
            return 0.0

    def _check_memory_pressure(self, protect: str | None = None) -> None:
        usage = self._read_memory_usage()
        if usage <= self.config.max_memory_mb:
            return

        target = math.floor(len(self._store) * _MEMORY_EVICTION_KEEP_RATIO)
        excess = len(self._store) - target
        candidates = sorted(
            (e for e in self._store.values() if e.key != protect),
            key=lambda e: e.last_accessed_at,
        )
        for entry in candidates[:excess]:
            self._store.pop(entry.key, None)
        logger.info(
            "Memory usage %.1fMB above %.1fMB, evicted %d cache entries",
            usage,
            self.config.max_memory_mb,
            min(excess, len(candidates)),
        )

    # ── Invalidation ─────────────────────────────────────────────────────────

    def _delete_matching(self, regex: re.Pattern[str]) -> int:
        with self._lock:
            matched = [k for k in self._store if regex.search(k)]
            for key in matched:
                self._store.pop(key, None)
            # Loads already running for a matching key must not be joined or stored.
            for key in [k for k in self._inflight if regex.search(k)]:
                del self._inflight[key]
        return len(matched)

    def invalidate_matching(self, regex: str | re.Pattern[str]) -> int:
        """Delete every key that *regex* finds a match in. Returns the count removed."""
        return self._delete_matching(re.compile(regex))

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a ``*`` wildcard *pattern*.

        ``*`` matches any run of characters; everything else is literal and
        may match anywhere in the key. An unusable pattern deletes nothing.

        Returns:
            Number of entries removed.
        """
        if not isinstance(pattern, str) or not pattern:
            logger.warning("Ignoring invalid cache invalidation pattern %r", pattern)
            return 0
        try:
            regex = re.compile(".*".join(re.escape(part) for part in pattern.split("*")))
        except re.error as exc:
            logger.warning("Ignoring invalid cache invalidation pattern %r: %s", pattern, exc)
            return 0
        removed = self._delete_matching(regex)
        logger.debug("Invalidated %d cache entries for pattern %r", removed, pattern)
        return removed

    def invalidate_task(self, task_id: int | str) -> int:
        """Delete every key holding *task_id* as a ``:``-delimited segment."""
        regex = re.compile(rf":{re.escape(str(task_id))}(?::|$)")
        removed = self._delete_matching(regex)
        logger.debug("Invalidated %d cache entries for task %s", removed, task_id)
        return removed

    # ── Read-through ─────────────────────────────────────────────────────────

    async def preload(
        self,
        key: str,
        loader: Loader,
        ttl: float | None = None,
        operation: str | None = None,
    ) -> Any:
        """Return the cached value for *key*, loading and storing it on a miss.

        Concurrent calls for the same missing key share a single loader
        invocation. A loader exception reaches every waiting caller and
        nothing is stored. If the caller running the load is cancelled, the
        callers waiting on it start a load of their own. A load that was
        invalidated while running still answers its own callers but is
        neither stored nor joined by later callers.
        """
        while True:
            value, found = self._lookup(key, operation)
            if found:
                return value
            # Only the first lookup counts towards the metrics.
            operation = None

            pending = self._inflight.get(key)
            if pending is None:
                break
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                logger.debug("Load of %s was abandoned, retrying", key)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = loader()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unawaited future does not log a warning.
            future.exception()
            raise
        else:
            if self._inflight.get(key) is future:
                self.set(key, result, ttl)
            else:
                logger.debug("Load of %s was invalidated, not storing", key)
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    # ── Maintenance & diagnostics ────────────────────────────────────────────

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._store.items() if e.is_expired(now)]
            for key in expired:
                self._store.pop(key, None)
        return len(expired)

    def get_ttl_for_operation(self, operation: str) -> float:
        return get_ttl_for_operation(operation, self.config.default_ttl_seconds)

    def get_cache_stats(self) -> CacheStats:
        """Point-in-time snapshot of the cache. Does not modify any entry."""
        now = self._clock()
        with self._lock:
            entries = list(self._store.values())
            ages = [e.age(now) for e in entries]
            expired = sum(1 for e in entries if e.is_expired(now))
            accesses = sum(e.access_count for e in entries)

        return CacheStats(
            total_entries=len(entries),
            memory_usage_mb=round(self._read_memory_usage(), 2),
            expired_entries=expired,
            average_access_count=accesses / len(entries) if entries else 0.0,
            oldest_entry_age_seconds=max(ages, default=0.0),
            newest_entry_age_seconds=min(ages, default=0.0),
        )
