"""Incremental document scanning."""

from .coordinator import DEFAULT_FIELDS, IncrementalScanCoordinator, parse_timestamp
from .processor import DocumentProcessor, ReportingProcessor
from .watermark import JsonWatermarkStore, MemoryWatermarkStore, WatermarkStore

__all__ = [
    "DEFAULT_FIELDS",
    "DocumentProcessor",
    "IncrementalScanCoordinator",
    "JsonWatermarkStore",
    "MemoryWatermarkStore",
    "ReportingProcessor",
    "WatermarkStore",
    "parse_timestamp",
]
