"""
Image resolution: turn candidate image URLs into durable asset-store URLs.

Resolution policy, in order:
1. No URL -> None, nothing attempted
2. URL already in the asset store -> returned unchanged, no re-upload
3. Relative or placeholder URL -> None, never fetched
4. Fetch; on failure the URL goes into the run's negative cache and the
   original URL is returned (unless the caller opts out of the fallback)
5. Upload the bytes under "{folder}/{asset_id}" and return the durable URL

Failures are logged once per URL per run; later calls for a cached URL
return the fallback without touching the network.
"""

import asyncio
import re
import unicodedata
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse
import logging

import httpx

from core.config import settings
from core.exceptions import AssetFetchError, AssetUploadError, ImageResolutionError, PersistenceError
from ingestion.loaders.product_loader import BatchLoader
from ingestion.storage.asset_store import AssetStore
from models.product import IMAGE_FIELDS
from schemas.normalized import ProductCreate

logger = logging.getLogger(__name__)

ImageRequest = Tuple[Optional[str], str, str]


def slugify(value: str) -> str:
    """ASCII slug: accents dropped, non-alphanumerics collapsed to '-'"""
    normalized = unicodedata.normalize("NFD", value or "")
    ascii_text = "".join(c for c in normalized if not unicodedata.combining(c))
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", ascii_text).strip("-").lower()
    return slug or "unknown"


def segment_folder_name(
    english: Optional[str] = None,
    portuguese: Optional[str] = None,
    code: Optional[str] = None
) -> str:
    """Folder segment from the first two words of the category description"""
    base = (english or "").strip() or (portuguese or "").strip() or code or "unknown"
    tokens = [t for t in re.sub(r"[^\w]+", " ", base).split(" ") if t]
    return slugify(" ".join(tokens[:2]) or base)


class ImageResolver:
    """
    Resolve candidate image URLs against an asset store.

    One instance per run: failed_urls is the run-scoped negative cache and
    starts empty.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        asset_store: AssetStore,
        source_domain: Optional[str] = None,
        source_token: Optional[str] = None,
        user_agent: Optional[str] = None,
        referer: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.http = http_client
        self.asset_store = asset_store
        self.source_domain = source_domain if source_domain is not None else settings.COSMOS_IMAGE_DOMAIN
        self.source_token = source_token if source_token is not None else settings.COSMOS_TOKEN
        self.user_agent = user_agent or settings.IMAGE_USER_AGENT
        self.referer = referer if referer is not None else settings.IMAGE_REFERER
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.failed_urls: Set[str] = set()

    def _is_source_url(self, url: str) -> bool:
        if not self.source_domain:
            return False
        host = urlparse(url).hostname or ""
        return host == self.source_domain or host.endswith("." + self.source_domain)

    def _headers(self, url: str) -> Dict[str, str]:
        headers = {
            "Accept": "image/*",
            "User-Agent": self.user_agent,
        }
        if self.referer:
            headers["Referer"] = self.referer
        if self.source_token and self._is_source_url(url):
            headers["X-Cosmos-Token"] = self.source_token
        return headers

    def _record_failure(self, url: str, error: ImageResolutionError) -> None:
        if url not in self.failed_urls:
            logger.warning(f"{error.message}, keeping original URL {url}")
            self.failed_urls.add(url)

    async def resolve(
        self,
        url: Optional[str],
        folder: str,
        asset_id: str,
        fallback_to_original: bool = True
    ) -> Optional[str]:
        """
        Return a durable URL for the image, the original URL as fallback, or None.
        """
        if not url:
            return None

        if self.asset_store.is_durable(url):
            return url

        normalized = url.strip()
        if not normalized.startswith(("http://", "https://")):
            return None

        fallback = normalized if fallback_to_original else None
        if normalized in self.failed_urls:
            return fallback

        try:
            response = await self.http.get(
                normalized,
                headers=self._headers(normalized),
                timeout=self.timeout,
                follow_redirects=True
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            self._record_failure(normalized, AssetFetchError(
                f"Image download failed ({type(e).__name__})",
                context={"folder": folder, "asset_id": asset_id},
                original_exception=e
            ))
            return fallback

        if not response.is_success:
            self._record_failure(normalized, AssetFetchError(
                f"Image download failed (status {response.status_code})",
                context={"folder": folder, "asset_id": asset_id, "status_code": response.status_code}
            ))
            return fallback

        content_type = response.headers.get("content-type") or "image/jpeg"
        try:
            uploaded = await self.asset_store.upload(
                response.content,
                folder=folder,
                asset_id=asset_id,
                content_type=content_type,
                overwrite=True
            )
        except AssetUploadError as e:
            self._record_failure(normalized, e)
            return fallback

        logger.debug(f"Stored {normalized} as {uploaded.public_id} ({uploaded.bytes} bytes)")
        return uploaded.url

    async def resolve_many(self, requests: List[ImageRequest]) -> List[Optional[str]]:
        """Resolve the images of one product concurrently"""
        return list(await asyncio.gather(
            *(self.resolve(url, folder, asset_id) for url, folder, asset_id in requests)
        ))


class ProductImageEnricher:
    """
    Image step of the catalog API flow.

    For each product:
    - Look up the stored row by barcode; an image URL already stored there is
      used as the candidate instead of the source URL, so durable URLs pass
      through without a new download
    - Resolve product, brand and barcode images concurrently
    """

    def __init__(self, resolver: ImageResolver, loader: BatchLoader):
        self.resolver = resolver
        self.loader = loader

    async def __call__(self, product: ProductCreate) -> ProductCreate:
        try:
            existing = await self.loader.lookup(product.barcode)
        except PersistenceError as e:
            logger.warning(f"Lookup failed for {product.barcode}, resolving source images: {e.message}")
            existing = None

        segment = segment_folder_name(
            product.gpc_english_description,
            product.gpc_portuguese_description,
            product.gpc_code
        )
        brand_id = slugify(product.brand or product.barcode)

        def candidate(field: str) -> Optional[str]:
            stored = getattr(existing, field, None) if existing is not None else None
            return stored or getattr(product, field)

        image_url, brand_image_url, barcode_image_url = await self.resolver.resolve_many([
            (candidate("image_url"), f"products/{segment}", product.barcode),
            (candidate("brand_image_url"), "brands", brand_id),
            (candidate("barcode_image_url"), f"barcodes/{segment}", product.barcode),
        ])

        resolved = dict(zip(IMAGE_FIELDS, (image_url, brand_image_url, barcode_image_url)))
        return product.model_copy(update=resolved)
