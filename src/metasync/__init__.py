"""
metasync - Metadata cache and incremental document scanning for Paperless-ngx.

Usage:
    from metasync import SyncConfig, SyncService

    config = SyncConfig.from_env()

    async with SyncService(config, processor=my_processor) as service:
        tags = await service.cache.ensure_tags(service.upstream)
        result = await service.scan()
        print(result.to_dict())
"""

__version__ = "1.0.0"

from .cache import MetadataCache
from .errors import MetaSyncError, ScheduleError, UpstreamUnavailableError
from .models.config import CacheConfig, PaperlessConfig, ScanConfig, SyncConfig
from .models.records import CachedRecord, Category
from .models.results import RefreshSummary, ScanBatch, ScanMode, ScanResult, ScanStatus
from .scan import (
    DocumentProcessor,
    IncrementalScanCoordinator,
    JsonWatermarkStore,
    MemoryWatermarkStore,
    WatermarkStore,
)
from .service import SyncService
from .upstream import DocumentQuery, PaperlessClient, TagCreator, UpstreamClient

__all__ = [
    "__version__",
    # Core
    "MetadataCache",
    "IncrementalScanCoordinator",
    "SyncService",
    # Config
    "SyncConfig",
    "PaperlessConfig",
    "CacheConfig",
    "ScanConfig",
    # Records and results
    "CachedRecord",
    "Category",
    "RefreshSummary",
    "ScanBatch",
    "ScanMode",
    "ScanResult",
    "ScanStatus",
    # Collaborators
    "DocumentProcessor",
    "DocumentQuery",
    "JsonWatermarkStore",
    "MemoryWatermarkStore",
    "PaperlessClient",
    "TagCreator",
    "UpstreamClient",
    "WatermarkStore",
    # Errors
    "MetaSyncError",
    "ScheduleError",
    "UpstreamUnavailableError",
]
