"""Upstream document-management API access."""

from .client import PaperlessClient
from .protocols import DocumentQuery, JsonObject, TagCreator, UpstreamClient

__all__ = [
    "DocumentQuery",
    "JsonObject",
    "PaperlessClient",
    "TagCreator",
    "UpstreamClient",
]
