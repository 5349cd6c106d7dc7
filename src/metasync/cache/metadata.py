"""Metadata cache for tags, correspondents and document types."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any, Optional, Union

from ..models.records import CachedRecord, Category
from ..models.results import RefreshSummary
from ..upstream.protocols import UpstreamClient
from .category import CategoryCache, CategoryFetcher, Clock

logger = logging.getLogger(__name__)

# Default TTL for cached categories (30 minutes)
DEFAULT_TTL_MS = 30 * 60 * 1000

FETCHERS: dict[Category, CategoryFetcher] = {
    Category.TAGS: lambda upstream: upstream.get_tags(),
    Category.CORRESPONDENTS: lambda upstream: upstream.list_correspondents_names(),
    Category.DOCUMENT_TYPES: lambda upstream: upstream.list_document_types_names(),
}

RecordLike = Union[CachedRecord, Mapping[str, Any]]


class MetadataCache:
    """
    Cache the upstream reference datasets with a shared TTL.

    Each category is an independent CategoryCache with its own lock,
    in-flight refresh marker and counters, so a refresh of one category never
    blocks reads or writes of another.

    Construct one instance at startup and inject it wherever reference data
    is needed (scan coordinator, admin handlers, event producers).

    Example:
        cache = MetadataCache(ttl_ms=30 * 60 * 1000)

        tags = await cache.ensure_tags(client)          # miss: fetches
        tags = await cache.ensure_tags(client)          # hit: no upstream call
        await cache.refresh_all(client)                 # timer-driven refresh
        print(cache.get_stats()["overall"]["hit_rate"])
    """

    def __init__(self, ttl_ms: int = DEFAULT_TTL_MS, clock: Optional[Clock] = None) -> None:
        """
        Initialize the metadata cache.

        Args:
            ttl_ms: Time-to-live in milliseconds (0 = every ensure refreshes)
            clock: Returns current epoch seconds (defaults to time.time)
        """
        if ttl_ms < 0:
            raise ValueError(f"ttl_ms must be >= 0, got {ttl_ms}")
        self.ttl_ms = ttl_ms
        self._clock = clock or time.time
        self._categories: dict[Category, CategoryCache] = {
            category: CategoryCache(category, fetch, ttl=ttl_ms / 1000, clock=self._clock)
            for category, fetch in FETCHERS.items()
        }
        logger.info(f"Metadata cache initialized with TTL: {ttl_ms}ms ({ttl_ms / 60000:g} minutes)")

    def category(self, category: Union[Category, str]) -> CategoryCache:
        """Look up the cache for a category (enum or its string value)."""
        return self._categories[Category(category)]

    async def ensure(self, category: Union[Category, str], upstream: UpstreamClient) -> list[CachedRecord]:
        """Return a category's records, refreshing on a miss."""
        return await self.category(category).ensure(upstream)

    async def refresh(self, category: Union[Category, str], upstream: UpstreamClient) -> list[CachedRecord]:
        """Unconditionally reload a category from upstream."""
        return await self.category(category).refresh(upstream)

    async def add_one(self, category: Union[Category, str], record: RecordLike) -> CachedRecord:
        """Insert or replace one record without touching the refresh time."""
        return await self.category(category).add(record)

    async def ensure_tags(self, upstream: UpstreamClient) -> list[CachedRecord]:
        return await self.ensure(Category.TAGS, upstream)

    async def ensure_correspondents(self, upstream: UpstreamClient) -> list[CachedRecord]:
        return await self.ensure(Category.CORRESPONDENTS, upstream)

    async def ensure_document_types(self, upstream: UpstreamClient) -> list[CachedRecord]:
        return await self.ensure(Category.DOCUMENT_TYPES, upstream)

    async def refresh_tags(self, upstream: UpstreamClient) -> list[CachedRecord]:
        return await self.refresh(Category.TAGS, upstream)

    async def refresh_correspondents(self, upstream: UpstreamClient) -> list[CachedRecord]:
        return await self.refresh(Category.CORRESPONDENTS, upstream)

    async def refresh_document_types(self, upstream: UpstreamClient) -> list[CachedRecord]:
        return await self.refresh(Category.DOCUMENT_TYPES, upstream)

    async def add_tag(self, tag: RecordLike) -> CachedRecord:
        return await self.add_one(Category.TAGS, tag)

    async def add_correspondent(self, correspondent: RecordLike) -> CachedRecord:
        return await self.add_one(Category.CORRESPONDENTS, correspondent)

    async def add_document_type(self, document_type: RecordLike) -> CachedRecord:
        return await self.add_one(Category.DOCUMENT_TYPES, document_type)

    async def refresh_all(self, upstream: UpstreamClient) -> RefreshSummary:
        """
        Refresh every category concurrently.

        A failing category does not stop the others; categories that
        succeeded keep their new data. If any category failed, the first
        failure (in category order) is raised after all refreshes settle.

        Args:
            upstream: Client to fetch from

        Returns:
            RefreshSummary with total duration and per-category sizes

        Raises:
            UpstreamUnavailableError: If any category failed to refresh
        """
        logger.info("Refreshing all metadata caches...")
        start = time.monotonic()

        categories = list(self._categories.values())
        results = await asyncio.gather(
            *(cache.refresh(upstream) for cache in categories),
            return_exceptions=True,
        )
        duration = time.monotonic() - start

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            failed = [c.category.value for c, r in zip(categories, results) if isinstance(r, BaseException)]
            logger.error(
                f"Error refreshing metadata caches after {duration * 1000:.0f}ms "
                f"(failed: {', '.join(failed)}): {errors[0]}"
            )
            raise errors[0]

        summary = RefreshSummary(
            duration_seconds=duration,
            sizes={c.category.value: len(r) for c, r in zip(categories, results)},  # type: ignore[arg-type]
        )
        logger.info(f"All metadata caches refreshed in {duration * 1000:.0f}ms")
        return summary

    async def clear_all(self) -> None:
        """Drop every cached record so the next ensure on each category misses."""
        logger.info("Clearing all metadata caches...")
        await asyncio.gather(*(cache.clear() for cache in self._categories.values()))
        logger.info("All metadata caches cleared")

    def get_cache_age(self, category: Union[Category, str]) -> str:
        """Age of a category as ``"<m>m <s>s"`` or ``"never"``."""
        return self.category(category).age()

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict keyed by category value plus ``overall`` with totals, hit rate
            (percent) and the configured TTL
        """
        stats: dict[str, Any] = {
            category.value: cache.stats() for category, cache in self._categories.items()
        }

        total_hits = sum(c.counters.hits for c in self._categories.values())
        total_misses = sum(c.counters.misses for c in self._categories.values())
        total_requests = total_hits + total_misses
        hit_rate = round(total_hits / total_requests * 100, 2) if total_requests else 0.0

        stats["overall"] = {
            "total_hits": total_hits,
            "total_misses": total_misses,
            "total_requests": total_requests,
            "hit_rate": hit_rate,
            "cache_ttl_ms": self.ttl_ms,
            "cache_ttl": f"{self.ttl_ms / 60000:g} minutes",
        }
        return stats

    def reset_stats(self) -> None:
        """Zero every counter; cached data is untouched."""
        for cache in self._categories.values():
            cache.counters.reset()
        logger.info("Metadata cache statistics reset")
