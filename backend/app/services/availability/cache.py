"""
TTL cache for availability responses.

MemoryCache: process-local store (default). Each process has its own copy,
    so several service instances may show slightly different availability
    until entries expire or are invalidated.
RedisCache: shared store with the same interface, for multi-instance
    deployments.

Both expose: get / set / delete / delete_pattern / has / clear / stats.
Patterns use "*" as "any substring".
"""

import asyncio
import fnmatch
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from redis import Redis

from .config import AvailabilityConfig, get_availability_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: Any
    written_at: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        return now - self.written_at >= self.ttl_seconds


def _check_ttl(ttl: int) -> int:
    if ttl <= 0:
        raise ValueError(f"ttl must be positive, got {ttl}")
    return ttl


class MemoryCache:
    """
    Thread-safe TTL store with bounded capacity.

    Expiry: lazily on read, plus a periodic sweep (start_sweeper / stop_sweeper).
    Eviction: when full, the entry with the oldest write time is dropped before
    a new key is inserted. Reads do not refresh an entry (not LRU).
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: int = 300,
        sweep_interval: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.default_ttl = _check_ttl(default_ttl)
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        # Insertion order == write order: set() re-inserts replaced keys
        self._store: dict[str, CacheEntry] = {}
        self._sweeper: asyncio.Task | None = None

    @classmethod
    def from_config(cls, config: AvailabilityConfig | None = None, **kwargs) -> "MemoryCache":
        config = config or get_availability_config()
        return cls(
            max_size=config.cache_max_size,
            default_ttl=config.default_ttl_seconds,
            sweep_interval=config.cache_sweep_interval_seconds,
            **kwargs,
        )

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Value for key, or None if absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._store[key]
                return None
            return entry.data

    def has(self, key: str) -> bool:
        """Whether a live entry exists, whatever its value (None included)."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._store[key]
                return False
            return True

    # ── Write ────────────────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store value under key, replacing any previous entry."""
        ttl = _check_ttl(ttl) if ttl is not None else self.default_ttl
        with self._lock:
            if key in self._store:
                del self._store[key]
            elif len(self._store) >= self.max_size:
                self._evict_oldest()
            self._store[key] = CacheEntry(
                key=key,
                data=value,
                written_at=self._clock(),
                ttl_seconds=ttl,
            )

    def _evict_oldest(self) -> None:
        oldest_key = next(iter(self._store))
        del self._store[oldest_key]
        logger.debug(f"Cache full ({self.max_size}), evicted {oldest_key}")

    # ── Delete ───────────────────────────────────────────────────────────

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a "*" wildcard pattern. Returns count."""
        with self._lock:
            keys = [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._store[key]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def sweep_expired(self) -> int:
        """Remove all expired entries regardless of access. Returns count."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._store.items() if e.is_expired(now)]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    # ── Monitoring ───────────────────────────────────────────────────────

    def stats(self) -> dict:
        with self._lock:
            now = self._clock()
            entries = [
                {
                    "key": e.key,
                    "age_seconds": round(now - e.written_at, 3),
                    "ttl_seconds": e.ttl_seconds,
                }
                for e in self._store.values()
                if not e.is_expired(now)
            ]
        return {
            "size": len(entries),
            "max_size": self.max_size,
            "entries": entries,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    # ── Sweeper ──────────────────────────────────────────────────────────

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self.sweeper_running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        logger.info(f"cache sweeper started (every {self.sweep_interval}s)")
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("cache sweeper error")


class RedisCache:
    """
    Same interface over Redis. Values must be JSON-serializable.

    Stored as an envelope {"data", "written_at", "ttl"} with a native TTL;
    capacity is left to the Redis eviction policy.
    """

    def __init__(
        self,
        redis: Redis,
        namespace: str = "availability:",
        default_ttl: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.namespace = namespace
        self.default_ttl = _check_ttl(default_ttl)
        self._clock = clock

    def get(self, key: str) -> Any | None:
        raw = self.redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)["data"]

    def has(self, key: str) -> bool:
        return bool(self.redis.exists(key))

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = _check_ttl(ttl) if ttl is not None else self.default_ttl
        envelope = {"data": value, "written_at": self._clock(), "ttl": ttl}
        self.redis.setex(key, ttl, json.dumps(envelope))

    def delete(self, key: str) -> bool:
        return self.redis.delete(key) > 0

    def delete_pattern(self, pattern: str) -> int:
        keys = list(self.redis.scan_iter(match=pattern))
        if not keys:
            return 0
        return self.redis.delete(*keys)

    def clear(self) -> None:
        self.delete_pattern(f"{self.namespace}*")

    def stats(self) -> dict:
        keys = list(self.redis.scan_iter(match=f"{self.namespace}*"))
        now = self._clock()
        entries = []
        for key, raw in zip(keys, self.redis.mget(keys) if keys else []):
            if raw is None:
                continue
            key = key.decode() if isinstance(key, bytes) else key
            try:
                envelope = json.loads(raw)
                entry = {
                    "key": key,
                    "age_seconds": round(now - float(envelope["written_at"]), 3),
                    "ttl_seconds": int(envelope["ttl"]),
                }
            except (ValueError, TypeError, KeyError):
                logger.warning(f"Skipping unreadable cache entry {key} in stats")
                continue
            entries.append(entry)
        return {"size": len(entries), "max_size": None, "entries": entries}

    # No local timer: Redis expires keys itself
    def sweep_expired(self) -> int:
        return 0

    def start_sweeper(self) -> None:
        pass

    async def stop_sweeper(self) -> None:
        pass


def build_cache(settings, config: AvailabilityConfig | None = None):
    """Create the cache backend selected in settings."""
    config = config or get_availability_config()
    backend = settings.availability_cache_backend

    if backend == "memory":
        return MemoryCache.from_config(config)

    if backend == "redis":
        from ...redis_client import redis_client

        if redis_client is None:
            raise RuntimeError("REDIS_URL is required for the redis cache backend")
        return RedisCache(redis_client, default_ttl=config.default_ttl_seconds)

    raise ValueError(f"Unknown availability cache backend: {backend}")
