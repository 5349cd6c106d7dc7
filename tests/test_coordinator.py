"""Tests for the incremental scan coordinator."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from metasync.cache import MetadataCache
from metasync.errors import UpstreamUnavailableError
from metasync.models.results import ScanMode, ScanStatus
from metasync.scan import IncrementalScanCoordinator, MemoryWatermarkStore, parse_timestamp
from metasync.upstream import DocumentQuery

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Aware-datetime clock that advances one minute per call."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(minutes=1)
        return current


@pytest.fixture
def processor():
    """Processor mock that reports success."""
    mock = AsyncMock()
    mock.process.return_value = True
    return mock


def make_coordinator(upstream, processor, watermarks, **kwargs):
    kwargs.setdefault("clock", StepClock())
    return IncrementalScanCoordinator(
        upstream=upstream,
        cache=MetadataCache(ttl_ms=60_000),
        watermarks=watermarks,
        processor=processor,
        **kwargs,
    )


class TestModeSelection:
    """Tests for choosing full vs incremental scans."""

    @pytest.mark.asyncio
    async def test_no_watermark_is_full_scan(self, upstream, processor):
        """Test that a missing watermark triggers a full scan without filter."""
        coordinator = make_coordinator(upstream, processor, MemoryWatermarkStore(), fields=["id", "modified"])

        result = await coordinator.run_scan()

        assert result.mode == ScanMode.FULL
        query = upstream.get_documents_optimized.await_args.args[0]
        assert query.modified_since is None
        assert query.ordering is None
        assert list(query.fields) == ["id", "modified"]

    @pytest.mark.asyncio
    async def test_watermark_is_incremental_scan(self, upstream, processor):
        """Test that an existing watermark filters by modification time."""
        watermarks = MemoryWatermarkStore("2024-04-30T08:00:00+00:00")
        coordinator = make_coordinator(upstream, processor, watermarks)

        result = await coordinator.run_scan(fields=["id", "title"])

        assert result.mode == ScanMode.INCREMENTAL
        query = upstream.get_documents_optimized.await_args.args[0]
        assert query == DocumentQuery(
            modified_since="2024-04-30T08:00:00+00:00",
            fields=["id", "title"],
            ordering="-modified",
            tags=None,
            page_size=100,
        )

    @pytest.mark.asyncio
    async def test_incremental_disabled_forces_full_scan(self, upstream, processor):
        """Test that disabling incremental mode ignores the watermark."""
        watermarks = MemoryWatermarkStore("2024-04-30T08:00:00+00:00")
        coordinator = make_coordinator(upstream, processor, watermarks, incremental=False)

        result = await coordinator.run_scan()

        assert result.mode == ScanMode.FULL
        assert upstream.get_documents_optimized.await_args.args[0].modified_since is None

    @pytest.mark.asyncio
    async def test_tag_filter_passed_through(self, upstream, processor):
        """Test that the configured tag filter reaches the query."""
        coordinator = make_coordinator(upstream, processor, MemoryWatermarkStore(), tags=[3, 4])

        await coordinator.run_scan()

        assert list(upstream.get_documents_optimized.await_args.args[0].tags) == [3, 4]

    @pytest.mark.asyncio
    async def test_full_override_ignores_watermark(self, upstream, processor):
        """Test that a forced full scan drops the filter and still advances."""
        watermarks = MemoryWatermarkStore("2024-04-30T08:00:00+00:00")
        coordinator = make_coordinator(upstream, processor, watermarks)

        result = await coordinator.run_scan(full=True)

        assert result.mode == ScanMode.FULL
        assert upstream.get_documents_optimized.await_args.args[0].modified_since is None
        assert watermarks.get_last_scan_timestamp() == START.isoformat()


class TestWatermark:
    """Tests for watermark advancement."""

    @pytest.mark.asyncio
    async def test_success_advances_to_scan_start(self, upstream, processor):
        """Test that a successful scan stores its start time."""
        upstream.get_documents_optimized.return_value = [{"id": 1, "title": "Invoice", "modified": "x"}]
        watermarks = MemoryWatermarkStore()
        coordinator = make_coordinator(upstream, processor, watermarks)

        result = await coordinator.run_scan()

        assert result.status == ScanStatus.COMPLETED
        assert result.document_count == 1
        assert watermarks.get_last_scan_timestamp() == START.isoformat()
        assert result.watermark_after == START.isoformat()
        assert result.advanced is True

    @pytest.mark.asyncio
    async def test_failure_keeps_watermark(self, upstream, processor):
        """Test that a failed batch leaves the watermark and a later success advances it."""
        upstream.get_documents_optimized.return_value = [{"id": 1}]
        w0 = "2024-04-30T08:00:00+00:00"
        watermarks = MemoryWatermarkStore(w0)
        coordinator = make_coordinator(upstream, processor, watermarks)

        processor.process.return_value = False
        failed = await coordinator.run_scan()

        assert failed.status == ScanStatus.FAILED
        assert failed.advanced is False
        assert watermarks.get_last_scan_timestamp() == w0

        processor.process.return_value = True
        succeeded = await coordinator.run_scan()

        assert succeeded.status == ScanStatus.COMPLETED
        assert parse_timestamp(watermarks.get_last_scan_timestamp()) >= parse_timestamp(w0)
        # The retried window starts at the same watermark
        assert upstream.get_documents_optimized.await_args.args[0].modified_since == w0

    @pytest.mark.asyncio
    async def test_processor_exception_propagates_without_advancing(self, upstream, processor):
        """Test that a crashing processor does not move the watermark."""
        upstream.get_documents_optimized.return_value = [{"id": 1}]
        watermarks = MemoryWatermarkStore()
        processor.process.side_effect = RuntimeError("pipeline crashed")
        coordinator = make_coordinator(upstream, processor, watermarks)

        with pytest.raises(RuntimeError):
            await coordinator.run_scan()

        assert watermarks.get_last_scan_timestamp() is None

    @pytest.mark.asyncio
    async def test_empty_batch_advances_without_processing(self, upstream, processor):
        """Test that no changed documents still advances the watermark."""
        watermarks = MemoryWatermarkStore("2024-04-30T08:00:00+00:00")
        coordinator = make_coordinator(upstream, processor, watermarks)

        result = await coordinator.run_scan()

        processor.process.assert_not_awaited()
        assert result.status == ScanStatus.COMPLETED
        assert watermarks.get_last_scan_timestamp() == START.isoformat()

    @pytest.mark.asyncio
    async def test_watermark_never_regresses(self, upstream, processor):
        """Test that a scan starting before the stored watermark keeps it."""
        future = (START + timedelta(days=1)).isoformat()
        watermarks = MemoryWatermarkStore(future)
        coordinator = make_coordinator(upstream, processor, watermarks)

        result = await coordinator.run_scan()

        assert watermarks.get_last_scan_timestamp() == future
        assert result.advanced is False

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, upstream, processor):
        """Test that a failing incremental fetch is not turned into a full scan."""
        watermarks = MemoryWatermarkStore("2024-04-30T08:00:00+00:00")
        upstream.get_documents_optimized.side_effect = UpstreamUnavailableError("HTTP 502")
        coordinator = make_coordinator(upstream, processor, watermarks)

        with pytest.raises(UpstreamUnavailableError):
            await coordinator.run_scan()

        assert upstream.get_documents_optimized.await_count == 1
        assert watermarks.get_last_scan_timestamp() == "2024-04-30T08:00:00+00:00"
        processor.process.assert_not_awaited()


class TestBatch:
    """Tests for the batch handed to the processor."""

    @pytest.mark.asyncio
    async def test_batch_contents(self, upstream, processor):
        """Test that documents and resolved reference data reach the processor."""
        upstream.get_documents_optimized.return_value = [{"id": 5, "title": "Letter"}]
        watermarks = MemoryWatermarkStore("2024-04-30T08:00:00+00:00")
        coordinator = make_coordinator(upstream, processor, watermarks)

        await coordinator.run_scan()

        batch = processor.process.await_args.args[0]
        assert batch.mode == ScanMode.INCREMENTAL
        assert batch.since == "2024-04-30T08:00:00+00:00"
        assert batch.documents == [{"id": 5, "title": "Letter"}]
        assert [t.name for t in batch.tags] == ["invoice"]
        assert [c.name for c in batch.correspondents] == ["ACME"]
        assert [d.name for d in batch.document_types] == ["Letter"]
        assert batch.started_at == START

    @pytest.mark.asyncio
    async def test_reference_data_is_cached_between_scans(self, upstream, processor):
        """Test that consecutive scans reuse the metadata cache."""
        upstream.get_documents_optimized.return_value = [{"id": 5}]
        coordinator = make_coordinator(upstream, processor, MemoryWatermarkStore())

        await coordinator.run_scan()
        await coordinator.run_scan()

        assert upstream.get_tags.await_count == 1
        assert upstream.list_correspondents_names.await_count == 1
        assert upstream.list_document_types_names.await_count == 1


class TestConcurrency:
    """Tests for scan serialization."""

    @pytest.mark.asyncio
    async def test_concurrent_scan_is_skipped(self, upstream, processor):
        """Test that a second scan while one is running is skipped."""
        release = asyncio.Event()

        async def slow_documents(query):
            await release.wait()
            return [{"id": 1}]

        upstream.get_documents_optimized.side_effect = slow_documents
        watermarks = MemoryWatermarkStore()
        coordinator = make_coordinator(upstream, processor, watermarks)

        first = asyncio.ensure_future(coordinator.run_scan())
        await asyncio.sleep(0)
        assert coordinator.running is True

        second = await coordinator.run_scan()
        assert second.status == ScanStatus.SKIPPED

        release.set()
        assert (await first).status == ScanStatus.COMPLETED
        assert upstream.get_documents_optimized.await_count == 1
        assert coordinator.running is False


class TestEndToEnd:
    """Full scan followed by an incremental scan."""

    @pytest.mark.asyncio
    async def test_full_then_incremental(self, upstream, processor):
        """Test that the second scan asks only for documents since the first scan's start."""
        watermarks = MemoryWatermarkStore()
        coordinator = make_coordinator(upstream, processor, watermarks)
        upstream.get_documents_optimized.return_value = [{"id": 1}, {"id": 2}]

        first = await coordinator.run_scan()
        assert first.mode == ScanMode.FULL
        assert first.watermark_after == START.isoformat()

        upstream.get_documents_optimized.return_value = [{"id": 2}]
        second = await coordinator.run_scan()

        assert second.mode == ScanMode.INCREMENTAL
        assert second.document_count == 1
        query = upstream.get_documents_optimized.await_args.args[0]
        assert query.modified_since == START.isoformat()
        assert query.ordering == "-modified"
        assert parse_timestamp(second.watermark_after) > parse_timestamp(first.watermark_after)
