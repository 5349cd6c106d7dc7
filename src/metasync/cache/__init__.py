"""Metadata caching for upstream reference data."""

from .category import CategoryCache, CategoryCounters
from .metadata import DEFAULT_TTL_MS, MetadataCache
from .store import CategoryState
from .ttl import format_age, is_valid

__all__ = [
    "CategoryCache",
    "CategoryCounters",
    "CategoryState",
    "DEFAULT_TTL_MS",
    "MetadataCache",
    "format_age",
    "is_valid",
]
