"""Async Paperless-ngx REST client with retry logic and pagination."""

from __future__ import annotations

import asyncio
import logging
import random
from types import TracebackType
from typing import Any
from urllib.parse import urljoin

import aiohttp

from ..errors import UpstreamUnavailableError
from .protocols import DocumentQuery, JsonObject

logger = logging.getLogger(__name__)


class PaperlessClient:
    """
    Async client for the Paperless-ngx REST API.

    Features:
    - Token authentication
    - Exponential backoff retry for transient failures (429, 5xx, network)
    - Transparent pagination over ``{count, next, previous, results}`` pages
    - Field projection and modified-since filtering for document listings

    Failures that survive the retries are raised as UpstreamUnavailableError.

    Example:
        client = PaperlessClient("http://paperless:8000", token="abc123")

        async with client:
            tags = await client.get_tags()
            docs = await client.get_documents_optimized(
                DocumentQuery(modified_since="2024-01-01T00:00:00+00:00", fields=["id", "title"])
            )
    """

    API_VERSION = 5

    # Status codes that warrant a retry
    RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

    # Exceptions that warrant a retry
    RETRYABLE_EXCEPTIONS = (
        aiohttp.ClientConnectionError,
        asyncio.TimeoutError,
        ConnectionError,
    )

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        default_timeout: float = 30.0,
        page_size: int = 100,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Paperless base URL, e.g. "http://paperless:8000"
            token: API token (sent as "Authorization: Token <token>")
            max_retries: Maximum retry attempts for failed requests
            retry_base_delay: Base delay for exponential backoff (seconds)
            default_timeout: Request timeout in seconds
            page_size: Page size for listing endpoints
        """
        self._base_url = base_url.rstrip("/") + "/"
        self._token = token
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._default_timeout = default_timeout
        self._page_size = page_size
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> PaperlessClient:
        """Enter async context and create session."""
        headers = {"Accept": f"application/json; version={self.API_VERSION}"}
        if self._token:
            headers["Authorization"] = f"Token {self._token}"
        self._session = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self._default_timeout),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit async context and close session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _url(self, path: str) -> str:
        return urljoin(self._base_url, path.lstrip("/"))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter: base * 2^attempt + [0, 1)."""
        delay: float = self._retry_base_delay * (2**attempt)
        jitter: float = random.uniform(0, 1)
        return delay + jitter

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: JsonObject | None = None,
    ) -> Any:
        """
        Perform a request with retry logic and decode the JSON body.

        Raises:
            UpstreamUnavailableError: On network errors or non-success status
                after retries are exhausted
        """
        if self._session is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        for attempt in range(self._max_retries + 1):
            try:
                async with self._session.request(method, url, params=params, json=json) as response:
                    if response.status in self.RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                        delay = self._calculate_retry_delay(attempt)
                        logger.warning(
                            f"Got {response.status} for {url}, retrying in {delay:.1f}s "
                            f"(attempt {attempt + 1}/{self._max_retries + 1})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    if response.status >= 400:
                        body = await response.text()
                        raise UpstreamUnavailableError(
                            f"{method} {url} returned HTTP {response.status}: {body[:200]}"
                        )

                    return await response.json(content_type=None)

            except self.RETRYABLE_EXCEPTIONS as e:
                if attempt < self._max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.warning(
                        f"Error calling {url}: {e}, retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self._max_retries + 1})"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"Upstream error for {url} after {self._max_retries + 1} attempts: {e}")
                    raise UpstreamUnavailableError(f"{method} {url} failed: {e}") from e

            except aiohttp.ClientError as e:
                raise UpstreamUnavailableError(f"{method} {url} failed: {e}") from e

        raise UpstreamUnavailableError(f"{method} {url} failed after {self._max_retries + 1} attempts")

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        return await self._request_json("GET", url, params=params)

    async def _get_all(self, path: str, params: dict[str, str] | None = None) -> list[JsonObject]:
        """
        Collect the results of every page of a listing endpoint.

        The ``next`` link already carries the query string, so params are only
        sent with the first request.
        """
        results: list[JsonObject] = []
        url: str | None = self._url(path)
        page_params = params
        pages = 0

        while url:
            page = await self._get_json(url, page_params)
            page_params = None
            pages += 1

            if isinstance(page, list):
                # Unpaginated response
                results.extend(page)
                break

            results.extend(page.get("results", []))
            url = page.get("next")

        logger.debug(f"Fetched {len(results)} items from {path} in {pages} page(s)")
        return results

    async def get_tags(self) -> list[JsonObject]:
        return await self._get_all("api/tags/", {"page_size": str(self._page_size)})

    async def list_correspondents_names(self) -> list[JsonObject]:
        return await self._get_all(
            "api/correspondents/",
            {"page_size": str(self._page_size), "fields": "id,name,document_count"},
        )

    async def list_document_types_names(self) -> list[JsonObject]:
        return await self._get_all(
            "api/document_types/",
            {"page_size": str(self._page_size), "fields": "id,name,document_count"},
        )

    async def get_documents_optimized(self, query: DocumentQuery) -> list[JsonObject]:
        """
        List documents with optional filtering and field projection.

        Args:
            query: Filter, projection and paging options

        Returns:
            All matching documents across every page
        """
        return await self._get_all("api/documents/", query.to_params())

    async def create_tag(self, name: str) -> JsonObject:
        """Create a tag and return the upstream representation."""
        created: JsonObject = await self._request_json("POST", self._url("api/tags/"), json={"name": name})
        logger.info(f"Created tag {name!r} (ID: {created.get('id')})")
        return created
