"""
Wiring for the two sync flows.

- Cosmos: paginated category API, per-record upsert, image resolution
- OpenFoodFacts: JSON Lines dump, regional filter, bulk insert, no images
"""

from typing import Optional
import asyncio
import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, settings as default_settings
from ingestion.checkpoints import CheckpointStore
from ingestion.extractors.cosmos_extractor import CosmosClient, CosmosExtractor
from ingestion.extractors.jsonl_extractor import JSONLinesExtractor
from ingestion.images import ImageResolver, ProductImageEnricher
from ingestion.loaders.product_loader import BulkInsertLoader, UpsertLoader
from ingestion.runner import PipelineRunner
from ingestion.storage.asset_store import AssetStore
from ingestion.transformers.normalizer import CosmosNormalizer, OpenFoodFactsNormalizer

logger = logging.getLogger(__name__)


def build_cosmos_pipeline(
    session: AsyncSession,
    category_code: str,
    http_client: httpx.AsyncClient,
    asset_store: AssetStore,
    checkpoints: CheckpointStore,
    config: Optional[Settings] = None,
    page: Optional[str] = None,
    max_pages: Optional[int] = None,
    stop_event: Optional[asyncio.Event] = None
) -> PipelineRunner:
    """
    Sync one Cosmos category (GPC code) into the catalog.

    Existing products are updated and their images resolved to durable
    asset-store URLs. A new ImageResolver (empty negative cache) is created
    for every run.
    """
    config = config or default_settings

    client = CosmosClient(
        http_client,
        base_url=config.COSMOS_BASE_URL,
        token=config.COSMOS_TOKEN,
        category_path=config.COSMOS_CATEGORY_PATH,
        max_retries=config.MAX_RETRIES,
        retry_delay=config.RETRY_DELAY,
        timeout=config.HTTP_TIMEOUT
    )
    resolver = ImageResolver(
        http_client,
        asset_store,
        source_domain=config.COSMOS_IMAGE_DOMAIN,
        source_token=config.COSMOS_TOKEN,
        user_agent=config.IMAGE_USER_AGENT,
        referer=config.IMAGE_REFERER,
        timeout=config.HTTP_TIMEOUT
    )
    loader = UpsertLoader(session)

    return PipelineRunner(
        source=CosmosExtractor(client, category_code, start_page=page, max_pages=max_pages),
        normalizer=CosmosNormalizer(category_code=category_code),
        loader=loader,
        checkpoints=checkpoints,
        batch_size=config.COSMOS_BATCH_SIZE,
        enricher=ProductImageEnricher(resolver, loader),
        stop_event=stop_event,
        progress_every=config.PROGRESS_EVERY
    )


def build_openfoodfacts_pipeline(
    session: AsyncSession,
    file_path: str,
    checkpoints: CheckpointStore,
    config: Optional[Settings] = None,
    max_lines: Optional[int] = None,
    max_records: Optional[int] = None,
    stop_event: Optional[asyncio.Event] = None
) -> PipelineRunner:
    """
    Back-fill regional products from an OpenFoodFacts JSON Lines dump.

    Only new barcodes are inserted; rows already in the catalog are left
    untouched. Ceilings default to OFF_MAX_LINES and OFF_MAX_RECORDS.
    """
    config = config or default_settings

    return PipelineRunner(
        source=JSONLinesExtractor(file_path),
        normalizer=OpenFoodFactsNormalizer(country_code=config.OFF_COUNTRY_CODE),
        loader=BulkInsertLoader(session),
        checkpoints=checkpoints,
        batch_size=config.OFF_BATCH_SIZE,
        max_scanned=max_lines if max_lines is not None else config.OFF_MAX_LINES,
        max_records=max_records if max_records is not None else config.OFF_MAX_RECORDS,
        stop_event=stop_event,
        progress_every=config.PROGRESS_EVERY
    )
