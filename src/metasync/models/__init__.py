"""Metasync configuration, record and result models."""

from .config import CacheConfig, PaperlessConfig, ScanConfig, SyncConfig
from .records import CachedRecord, Category, RecordId
from .results import RefreshSummary, ScanBatch, ScanMode, ScanResult, ScanStatus

__all__ = [
    # Config
    "CacheConfig",
    "PaperlessConfig",
    "ScanConfig",
    "SyncConfig",
    # Records
    "CachedRecord",
    "Category",
    "RecordId",
    # Results
    "RefreshSummary",
    "ScanBatch",
    "ScanMode",
    "ScanResult",
    "ScanStatus",
]
