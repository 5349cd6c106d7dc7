"""Incremental scan coordinator: select changed documents and advance the watermark."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from ..cache.metadata import MetadataCache
from ..models.results import ScanBatch, ScanMode, ScanResult, ScanStatus
from ..upstream.protocols import DocumentQuery, UpstreamClient
from .processor import DocumentProcessor
from .watermark import WatermarkStore

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = ("id", "title", "modified", "tags", "correspondent", "document_type")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class IncrementalScanCoordinator:
    """
    Run scan cycles that fetch only documents changed since the last one.

    A cycle reads the watermark, picks full or incremental mode, fetches the
    matching documents, resolves reference data through the metadata cache,
    and hands everything to the processor. The watermark is moved to the
    cycle's start time only after the processor reports success, so a
    failed cycle is retried in full on the next run (at-least-once). Documents
    modified while a cycle runs can be delivered twice; processors must be
    idempotent.

    Only one cycle runs at a time; a cycle requested while another is in
    progress is skipped.

    Example:
        coordinator = IncrementalScanCoordinator(
            upstream=client,
            cache=cache,
            watermarks=JsonWatermarkStore(Path(".metasync/state.json")),
            processor=my_processor,
        )
        result = await coordinator.run_scan(fields=["id", "title", "modified"])
        print(result.to_dict())
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        cache: MetadataCache,
        watermarks: WatermarkStore,
        processor: DocumentProcessor,
        incremental: bool = True,
        fields: Optional[Sequence[str]] = DEFAULT_FIELDS,
        tags: Optional[Sequence[Union[int, str]]] = None,
        page_size: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            upstream: Client used for document listings and reference data
            cache: Metadata cache for tags, correspondents and document types
            watermarks: Persistence for the last-scan timestamp
            processor: Downstream consumer of each batch
            incremental: If False, every scan is a full scan
            fields: Default field projection (None = all fields)
            tags: Default tag filter for document listings
            page_size: Page size for document listings
            clock: Returns the current aware datetime (defaults to UTC now)
        """
        self._upstream = upstream
        self._cache = cache
        self._watermarks = watermarks
        self._processor = processor
        self.incremental = incremental
        self.fields = list(fields) if fields else None
        self.tags = list(tags) if tags else None
        self.page_size = page_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def _build_query(
        self,
        watermark: Optional[str],
        fields: Optional[Sequence[str]],
        tags: Optional[Sequence[Union[int, str]]],
        full: bool = False,
    ) -> tuple[ScanMode, DocumentQuery]:
        if full or watermark is None or not self.incremental:
            return ScanMode.FULL, DocumentQuery(fields=fields, tags=tags, page_size=self.page_size)
        return ScanMode.INCREMENTAL, DocumentQuery(
            modified_since=watermark,
            fields=fields,
            ordering="-modified",
            tags=tags,
            page_size=self.page_size,
        )

    def _next_watermark(self, current: Optional[str], started_at: datetime) -> str:
        """Start time of this scan, but never earlier than the current watermark."""
        candidate = started_at.isoformat()
        if current is not None and parse_timestamp(current) > started_at:
            logger.warning(f"Scan start {candidate} is older than watermark {current}; keeping watermark")
            return current
        return candidate

    async def run_scan(
        self,
        fields: Optional[Sequence[str]] = None,
        tags: Optional[Sequence[Union[int, str]]] = None,
        full: bool = False,
    ) -> ScanResult:
        """
        Run one scan cycle.

        Args:
            fields: Field projection for this call (defaults to the coordinator's)
            tags: Tag filter for this call (defaults to the coordinator's)
            full: Ignore the watermark for this cycle (it still advances on success)

        Returns:
            ScanResult describing the cycle

        Raises:
            UpstreamUnavailableError: If documents or reference data could not be
                fetched. The watermark is left untouched.
        """
        if self._lock.locked():
            logger.info("Scan already in progress, skipping this trigger")
            return ScanResult(status=ScanStatus.SKIPPED, message="scan already in progress")

        async with self._lock:
            return await self._run_locked(
                fields=fields if fields is not None else self.fields,
                tags=tags if tags is not None else self.tags,
                full=full,
            )

    async def _run_locked(
        self,
        fields: Optional[Sequence[str]],
        tags: Optional[Sequence[Union[int, str]]],
        full: bool,
    ) -> ScanResult:
        started_at = self._clock()
        start = time.monotonic()

        watermark = self._watermarks.get_last_scan_timestamp()
        mode, query = self._build_query(watermark, fields, tags, full)

        if mode == ScanMode.FULL:
            logger.info("Starting full document scan")
        else:
            logger.info(f"Starting incremental document scan (modified since {watermark})")

        documents = await self._upstream.get_documents_optimized(query)
        logger.info(f"Found {len(documents)} document(s) to process ({mode.value} scan)")

        tag_records, correspondents, document_types = await asyncio.gather(
            self._cache.ensure_tags(self._upstream),
            self._cache.ensure_correspondents(self._upstream),
            self._cache.ensure_document_types(self._upstream),
        )

        result = ScanResult(
            status=ScanStatus.COMPLETED,
            mode=mode,
            document_count=len(documents),
            started_at=started_at,
            watermark_before=watermark,
            watermark_after=watermark,
        )

        if documents:
            batch = ScanBatch(
                mode=mode,
                documents=documents,
                tags=tag_records,
                correspondents=correspondents,
                document_types=document_types,
                started_at=started_at,
                since=watermark if mode == ScanMode.INCREMENTAL else None,
            )
            succeeded = await self._processor.process(batch)
        else:
            succeeded = True

        result.duration_seconds = time.monotonic() - start

        if not succeeded:
            logger.info(f"Processing reported failure; watermark advance skipped (stays at {watermark})")
            result.status = ScanStatus.FAILED
            result.message = "processor reported failure"
            return result

        new_watermark = self._next_watermark(watermark, started_at)
        self._watermarks.set_last_scan_timestamp(new_watermark)
        result.watermark_after = new_watermark
        logger.info(
            f"Scan completed: {len(documents)} document(s) in {result.duration_seconds:.2f}s, "
            f"watermark -> {new_watermark}"
        )
        return result
