"""Protocol definitions for the upstream document-management API."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable

JsonObject = dict[str, Any]


@dataclass(frozen=True)
class DocumentQuery:
    """
    Filter, projection and paging options for a document listing.

    Attributes:
        modified_since: ISO-8601 timestamp; only documents modified at or after it
        fields: Field projection (None = all fields)
        ordering: Sort key, e.g. "-modified"
        tags: Restrict to documents carrying any of these tag ids
        page_size: Page size used for the internal pagination
    """

    modified_since: Optional[str] = None
    fields: Optional[Sequence[str]] = None
    ordering: Optional[str] = None
    tags: Optional[Sequence[Union[int, str]]] = None
    page_size: int = 100

    def to_params(self) -> dict[str, str]:
        """Render the query as REST query-string parameters."""
        params: dict[str, str] = {"page_size": str(self.page_size)}
        if self.modified_since:
            params["modified__gte"] = self.modified_since
        if self.fields:
            params["fields"] = ",".join(self.fields)
        if self.ordering:
            params["ordering"] = self.ordering
        if self.tags:
            params["tags__id__in"] = ",".join(str(t) for t in self.tags)
        return params


class UpstreamClient(Protocol):
    """
    Protocol for the upstream API consumed by the cache and the coordinator.

    Implementations own retries and timeouts. Every method either returns
    promptly or raises (ideally UpstreamUnavailableError).
    """

    async def get_tags(self) -> list[JsonObject]:
        """Return all tags as objects with at least ``id`` and ``name``."""
        ...

    async def list_correspondents_names(self) -> list[JsonObject]:
        """Return all correspondents as objects with at least ``id`` and ``name``."""
        ...

    async def list_document_types_names(self) -> list[JsonObject]:
        """Return all document types as objects with at least ``id`` and ``name``."""
        ...

    async def get_documents_optimized(self, query: DocumentQuery) -> list[JsonObject]:
        """Return every document matching ``query``, following pagination."""
        ...


@runtime_checkable
class TagCreator(Protocol):
    """Upstream client that can create tags (used to feed the tag cache)."""

    async def create_tag(self, name: str) -> JsonObject:
        """Create a tag and return its upstream representation."""
        ...
