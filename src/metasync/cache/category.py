"""Generic per-category cache with TTL validity and coalesced refreshes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from ..errors import UpstreamUnavailableError
from ..models.records import CachedRecord, Category
from ..upstream.protocols import UpstreamClient
from .store import CategoryState
from .ttl import format_age, is_valid

logger = logging.getLogger(__name__)

# Fetches the full current dataset for one category from upstream
CategoryFetcher = Callable[[UpstreamClient], Awaitable[Sequence[Mapping[str, Any]]]]
Clock = Callable[[], float]


@dataclass
class CategoryCounters:
    """Request counters for one category."""

    hits: int = 0
    misses: int = 0
    refreshes: int = 0
    failures: int = 0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.refreshes = 0
        self.failures = 0


class CategoryCache:
    """
    Cache for one reference-data category.

    Writers (``refresh``, ``add``, ``clear``) are serialized by a per-category
    ``asyncio.Lock``. Reads on the hit path take no lock and may observe the
    previous snapshot while a refresh is running.

    Missing ``ensure`` calls are coalesced: the first one starts a refresh task
    and stores its future; concurrent misses await that same future instead of
    calling upstream again. The task re-checks validity once it holds the lock,
    so a miss racing with an explicit ``refresh`` does not fetch twice.

    Example:
        tags = CategoryCache(Category.TAGS, lambda up: up.get_tags(), ttl=1800)
        records = await tags.ensure(client)
    """

    def __init__(
        self,
        category: Category,
        fetch: CategoryFetcher,
        ttl: float,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize the category cache.

        Args:
            category: Which reference dataset this cache holds
            fetch: Coroutine function returning the full dataset from upstream
            ttl: Time-to-live in seconds (0 disables caching)
            clock: Returns current epoch seconds (defaults to time.time)
        """
        self.category = category
        self.ttl = ttl
        self.counters = CategoryCounters()
        self._fetch = fetch
        self._clock = clock or time.time
        self._state = CategoryState()
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future[list[CachedRecord]]] = None

    @property
    def size(self) -> int:
        return len(self._state)

    @property
    def last_refresh_at(self) -> Optional[float]:
        return self._state.last_refresh_at

    @property
    def refreshing(self) -> bool:
        """True while a coalesced refresh is in flight."""
        return self._inflight is not None

    def is_valid(self) -> bool:
        return is_valid(self._state.last_refresh_at, self.ttl, self._clock())

    def is_hit(self) -> bool:
        """A hit needs a fresh refresh and at least one entry."""
        return self.is_valid() and len(self._state) > 0

    def age(self) -> str:
        return format_age(self._state.last_refresh_at, self._clock())

    def age_seconds(self) -> Optional[float]:
        if self._state.last_refresh_at is None:
            return None
        return max(0.0, self._clock() - self._state.last_refresh_at)

    def snapshot(self) -> list[CachedRecord]:
        return self._state.snapshot()

    def get(self, record_id: Any) -> Optional[CachedRecord]:
        return self._state.get(record_id)

    async def ensure(self, upstream: UpstreamClient) -> list[CachedRecord]:
        """
        Return the cached records, refreshing from upstream on a miss.

        Args:
            upstream: Client used if a refresh is needed

        Returns:
            Copy of the category's records

        Raises:
            UpstreamUnavailableError: If the miss-triggered refresh failed
        """
        if self.is_hit():
            self.counters.hits += 1
            logger.debug(
                f"{self.category.label} cache HIT (age: {self.age()}, size: {self.size})"
            )
            return self._state.snapshot()

        self.counters.misses += 1
        logger.debug(f"{self.category.label} cache MISS")

        if self._inflight is None:
            future = asyncio.ensure_future(self._refresh_if_stale(upstream))
            future.add_done_callback(self._clear_inflight)
            self._inflight = future
        else:
            logger.debug(f"Joining in-flight {self.category.label} refresh")

        # Shield so a cancelled waiter does not cancel the shared refresh
        records = await asyncio.shield(self._inflight)
        return list(records)

    def _clear_inflight(self, future: asyncio.Future[list[CachedRecord]]) -> None:
        if self._inflight is future:
            self._inflight = None
        # Mark the exception as retrieved when every waiter was cancelled
        if not future.cancelled():
            future.exception()

    async def _refresh_if_stale(self, upstream: UpstreamClient) -> list[CachedRecord]:
        async with self._lock:
            if self.is_hit():
                return self._state.snapshot()
            return await self._refresh_locked(upstream)

    async def refresh(self, upstream: UpstreamClient) -> list[CachedRecord]:
        """
        Fetch the full dataset from upstream and replace the cached one.

        Args:
            upstream: Client to fetch from

        Returns:
            Copy of the new records

        Raises:
            UpstreamUnavailableError: On any upstream failure. The cached
                state is left exactly as it was.
        """
        async with self._lock:
            return await self._refresh_locked(upstream)

    async def _refresh_locked(self, upstream: UpstreamClient) -> list[CachedRecord]:
        logger.info(f"Refreshing {self.category.label} cache...")
        try:
            payload = await self._fetch(upstream)
            records = [CachedRecord.from_api(item) for item in payload]
        except Exception as e:
            self.counters.failures += 1
            logger.error(f"Error refreshing {self.category.label}: {e}")
            if isinstance(e, UpstreamUnavailableError):
                if e.category is None:
                    e.category = self.category.value
                raise
            raise UpstreamUnavailableError(
                f"Refreshing {self.category.label} failed: {e}",
                category=self.category.value,
            ) from e

        self._state.replace(records, refreshed_at=self._clock())
        self.counters.refreshes += 1

        if records:
            logger.info(f"{self.category.label} cache refreshed: {len(records)} loaded")
        else:
            logger.warning(
                f"{self.category.label} cache refreshed with 0 records; "
                "next request will retry upstream"
            )
        return self._state.snapshot()

    async def add(self, record: Union[CachedRecord, Mapping[str, Any]]) -> CachedRecord:
        """
        Insert or replace one record by id.

        Leaves the refresh time and counters alone, so the cache may hold one
        record newer than its ``last_refresh_at`` suggests.
        """
        item = CachedRecord.coerce(record)
        async with self._lock:
            self._state.upsert(item)
        logger.info(f"{self.category.label} cache: added {item.name} (ID: {item.id})")
        return item

    async def clear(self) -> None:
        async with self._lock:
            self._state.clear()

    def stats(self) -> dict[str, Any]:
        """Reporting snapshot for this category (does not mutate state)."""
        last = self._state.last_refresh_at
        return {
            "size": self.size,
            "last_refresh_at": (
                datetime.fromtimestamp(last, tz=timezone.utc).isoformat() if last is not None else None
            ),
            "age": self.age(),
            "age_seconds": self.age_seconds(),
            "is_valid": self.is_valid(),
            "hits": self.counters.hits,
            "misses": self.counters.misses,
            "refreshes": self.counters.refreshes,
            "failures": self.counters.failures,
        }
