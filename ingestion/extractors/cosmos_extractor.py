"""
Cosmos catalog API client and paginated category extractor.

This module provides:
- An httpx client wrapper with token auth and exponential backoff retries
- Error mapping: unreachable upstream -> SourceUnavailableError (HTTP 502 class)
- A category (GPC) extractor that follows the opaque next_page cursor and
  checkpoints by page
"""

import httpx
import asyncio
from typing import AsyncIterator, Dict, Any, Optional, Union
import logging

from pydantic import ValidationError

from ingestion.base import DataSource, ItemKind, SourceItem
from models.base import SourceType
from schemas.pipeline import Checkpoint
from schemas.sources import CosmosCategoryPage
from core.config import settings
from core.exceptions import (
    SourceUnavailableError,
    AuthenticationError,
    ResourceNotFoundError,
    MalformedPayloadError,
)

logger = logging.getLogger(__name__)

PageRef = Union[str, int, None]


class CosmosClient:
    """
    Thin client for the Cosmos product catalog API.

    Attributes:
        base_url: API root, without trailing slash
        category_path: Path template for category listings ("/gpcs/{code}")
        max_retries: Maximum number of attempts per request (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        category_path: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None
    ):
        self.http = http_client
        self.base_url = (base_url or settings.COSMOS_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.COSMOS_TOKEN
        self.category_path = category_path or settings.COSMOS_CATEGORY_PATH
        self.max_retries = max_retries if max_retries is not None else settings.MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.RETRY_DELAY
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT

        if not self.token:
            logger.warning("COSMOS_TOKEN is not set; Cosmos API requests will fail")

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["X-Cosmos-Token"] = self.token
        return headers

    def resolve_url(self, path: str, page: PageRef = None) -> tuple:
        """
        Build the request URL and query params.

        A page cursor that is already an absolute https URL is requested
        as-is; anything else is sent as the page query parameter.
        """
        if isinstance(page, str) and page.startswith("https://"):
            return page, {}

        url = path if path.startswith("https://") else f"{self.base_url}/{path.lstrip('/')}"
        params = {"page": page} if page is not None else {}
        return url, params

    async def get_category(self, code: str, page: PageRef = None) -> Dict[str, Any]:
        """
        Fetch one page of products for a category (GPC) code.

        Raises:
            SourceUnavailableError: Upstream unreachable or failing
            AuthenticationError: Token rejected
            ResourceNotFoundError: Unknown category code
            MalformedPayloadError: Body is not a JSON object
        """
        url, params = self.resolve_url(self.category_path.format(code=code), page)
        response = await self._get_with_retry(url, params)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedPayloadError(
                "Failed to parse JSON response",
                context={
                    "api_url": url,
                    "page": page,
                    "response_body": response.text[:500]
                },
                original_exception=e
            )

        if not isinstance(data, dict):
            raise MalformedPayloadError(
                "Unexpected response shape",
                context={"api_url": url, "page": page, "type": type(data).__name__}
            )
        return data

    async def _get_with_retry(self, url: str, params: Dict[str, Any]) -> httpx.Response:
        """
        GET with retry logic and exponential backoff.

        Retries timeouts, network errors and 5xx responses. Everything else
        is mapped to a typed error immediately.
        """
        for attempt in range(self.max_retries):
            last_attempt = attempt >= self.max_retries - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                logger.debug(f"Request attempt {attempt + 1}/{self.max_retries} to {url}")
                response = await self.http.get(
                    url,
                    headers=self.headers,
                    params=params,
                    timeout=self.timeout
                )
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if not last_attempt:
                    logger.warning(f"{type(e).__name__} calling {url}. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                raise SourceUnavailableError(
                    "Failed to reach external API",
                    context={"api_url": url, "retry_count": attempt + 1},
                    original_exception=e
                )
            except httpx.HTTPError as e:
                raise SourceUnavailableError(
                    "Failed to reach external API",
                    context={"api_url": url, "retry_count": attempt + 1},
                    original_exception=e
                )

            if response.status_code in (401, 403):
                raise AuthenticationError(
                    f"Authentication failed for {url}",
                    context={"status_code": response.status_code, "api_url": url}
                )

            if response.status_code == 404:
                raise ResourceNotFoundError(
                    f"Resource not found: {url}",
                    context={"status_code": 404, "api_url": url}
                )

            if response.status_code >= 500:
                if not last_attempt:
                    logger.warning(
                        f"Server error {response.status_code}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise SourceUnavailableError(
                    f"Server error after {self.max_retries} attempts",
                    context={
                        "api_url": url,
                        "retry_count": attempt + 1,
                        "upstream_status": response.status_code,
                        "response_body": response.text[:500]
                    }
                )

            if response.status_code >= 400:
                raise SourceUnavailableError(
                    f"External API request failed with status {response.status_code}",
                    context={"api_url": url, "response_body": response.text[:500]},
                    status_code=response.status_code
                )

            return response

        raise SourceUnavailableError(
            "Max retries exceeded",
            context={"api_url": url}
        )


class CosmosExtractor(DataSource):
    """
    Stream products of one Cosmos category, page by page.

    Checkpoint semantics:
    - position: last page whose products were all handed out
    - cursor: next_page value returned with that page, None once exhausted

    Products of a page carry the checkpoint of the previous page; a MARKER
    after the last product carries the checkpoint of the page itself, so the
    checkpoint only moves once the whole page has been persisted.
    """

    def __init__(
        self,
        client: CosmosClient,
        category_code: str,
        start_page: PageRef = None,
        max_pages: Optional[int] = None
    ):
        super().__init__(
            source_type=SourceType.COSMOS,
            source_key=f"cosmos:{category_code}"
        )
        self.client = client
        self.category_code = str(category_code)
        self.start_page = start_page
        self.max_pages = max_pages

    def is_exhausted(self, checkpoint: Checkpoint) -> bool:
        return checkpoint.position > 0 and checkpoint.cursor is None

    async def stream(self, checkpoint: Checkpoint) -> AsyncIterator[SourceItem]:
        """
        Yield products starting at the page after the checkpoint.

        An explicit start_page overrides the checkpoint.
        """
        if self.start_page is not None:
            requested: PageRef = self.start_page
        elif self.is_exhausted(checkpoint):
            logger.info(f"Category {self.category_code} already exhausted at page {checkpoint.position}")
            return
        else:
            requested = checkpoint.cursor

        previous = checkpoint
        pages_read = 0

        while True:
            logger.info(f"Fetching category {self.category_code} page {requested or 1}")
            try:
                payload = await self.client.get_category(self.category_code, requested)
                page = CosmosCategoryPage.model_validate(payload)
            except (MalformedPayloadError, ValidationError) as e:
                yield SourceItem(
                    kind=ItemKind.MALFORMED,
                    position=previous,
                    error=f"page {requested or 1}: {e}"
                )
                return

            current_page = self.resolve_current_page(page.current_page, requested, previous.position)
            next_page = str(page.next_page) if page.next_page not in (None, "") else None
            position = Checkpoint(
                source_key=self.source_key,
                position=current_page,
                cursor=next_page
            )
            context = {
                "category_code": self.category_code,
                "page": current_page,
                "gpc_english_description": page.english_description,
                "gpc_portuguese_description": page.portuguese,
            }

            for raw in page.products or []:
                if isinstance(raw, dict):
                    yield SourceItem(kind=ItemKind.RECORD, position=previous, raw=raw, context=context)
                else:
                    yield SourceItem(
                        kind=ItemKind.MALFORMED,
                        position=previous,
                        error=f"page {current_page}: product entry is {type(raw).__name__}"
                    )

            yield SourceItem(kind=ItemKind.MARKER, position=position, context=context, scanned=False)

            previous = position
            pages_read += 1

            if next_page is None:
                logger.info(f"Category {self.category_code} exhausted at page {current_page}")
                return
            if self.max_pages is not None and pages_read >= self.max_pages:
                return
            requested = next_page

    @staticmethod
    def resolve_current_page(response_page: Any, requested_page: PageRef, previous_page: int = 0) -> int:
        """Page number reported by the API, else the requested one, else the one after previous_page"""
        for candidate in (response_page, requested_page):
            try:
                value = int(candidate)
            except (TypeError, ValueError):
                continue
            if value > 0:
                return value
        return previous_page + 1
