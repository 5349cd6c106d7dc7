"""SyncService: wires the upstream client, metadata cache and scan coordinator."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType
from typing import Any, Optional

from .cache import MetadataCache
from .models.config import SyncConfig
from .models.records import CachedRecord
from .models.results import RefreshSummary, ScanResult
from .scan import (
    DocumentProcessor,
    IncrementalScanCoordinator,
    JsonWatermarkStore,
    ReportingProcessor,
    WatermarkStore,
)
from .scheduler import Scheduler, parse_schedule
from .upstream import PaperlessClient, TagCreator, UpstreamClient

logger = logging.getLogger(__name__)


class SyncService:
    """
    Process-wide service object owning the metadata cache and scan state.

    Construct once at startup and pass it (or its ``cache``) to every
    component that needs reference data. Entering the async context opens
    the upstream session; the cache lives as long as the service.

    Example:
        config = SyncConfig.from_env()

        async with SyncService(config, processor=my_processor) as service:
            await service.refresh_cache()
            result = await service.scan()
            print(service.cache.get_stats())
    """

    def __init__(
        self,
        config: SyncConfig,
        processor: Optional[DocumentProcessor] = None,
        upstream: Optional[UpstreamClient] = None,
        watermarks: Optional[WatermarkStore] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            config: Validated configuration
            processor: Downstream consumer of scan batches (defaults to ReportingProcessor)
            upstream: Upstream client (defaults to a PaperlessClient built from config)
            watermarks: Watermark store (defaults to a JsonWatermarkStore at config path)
        """
        self.config = config
        self._owns_client = upstream is None
        self.upstream: UpstreamClient = upstream or PaperlessClient(
            config.paperless.url,
            token=config.paperless.token,
            max_retries=config.paperless.max_retries,
            default_timeout=config.paperless.timeout,
            page_size=config.paperless.page_size,
        )
        self.watermarks: WatermarkStore = watermarks or JsonWatermarkStore(config.scan.watermark_file)
        self.cache = MetadataCache(ttl_ms=config.cache.ttl_ms)
        self.coordinator = IncrementalScanCoordinator(
            upstream=self.upstream,
            cache=self.cache,
            watermarks=self.watermarks,
            processor=processor or ReportingProcessor(),
            incremental=config.scan.incremental,
            fields=config.scan.fields,
            tags=config.scan.tags,
            page_size=config.paperless.page_size,
        )
        self._scheduler: Optional[Scheduler] = None

    async def __aenter__(self) -> SyncService:
        """Enter async context and open the upstream session."""
        if self._owns_client and isinstance(self.upstream, PaperlessClient):
            await self.upstream.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop timers and close the upstream session."""
        if self._scheduler:
            self._scheduler.stop()
        if self._owns_client and isinstance(self.upstream, PaperlessClient):
            await self.upstream.__aexit__(exc_type, exc_val, exc_tb)

    async def refresh_cache(self) -> RefreshSummary:
        """Refresh all reference data (what the cache-refresh timer runs)."""
        return await self.cache.refresh_all(self.upstream)

    async def scan(self, fields: Optional[Sequence[str]] = None, full: bool = False) -> ScanResult:
        """Run one scan cycle (what the document-scan timer runs)."""
        return await self.coordinator.run_scan(fields=fields, full=full)

    async def create_tag(self, name: str) -> CachedRecord:
        """
        Create a tag upstream and put it straight into the cache.

        Skips a full tag refresh; the cache's refresh time is not changed.
        """
        if not isinstance(self.upstream, TagCreator):
            raise TypeError(f"{type(self.upstream).__name__} cannot create tags")
        created = await self.upstream.create_tag(name)
        return await self.cache.add_tag(created)

    def stats(self) -> dict[str, Any]:
        return self.cache.get_stats()

    def build_scheduler(self) -> Scheduler:
        """Create the two independent timers: cache refresh and document scan."""
        scheduler = Scheduler()
        scheduler.add_job(
            "refresh-metadata-cache",
            parse_schedule(self.config.cache.refresh_interval),
            self.refresh_cache,
        )
        scheduler.add_job(
            "document-scan",
            parse_schedule(self.config.scan.interval),
            self.scan,
        )
        self._scheduler = scheduler
        return scheduler

    async def serve(self) -> None:
        """Run both timers until the scheduler is stopped or the task is cancelled."""
        scheduler = self.build_scheduler()
        logger.info("metasync service started")
        try:
            await scheduler.run()
        finally:
            logger.info("metasync service stopped")
