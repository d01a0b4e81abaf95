"""
Raw record shapes for the two catalog sources.

Upstream JSON is arbitrary; these models are the validation boundary used by
the normalizers. Unknown fields are kept (extra="allow") so the raw payload
can be stored verbatim, and every field is optional so that a missing field
turns into a rejection at the normalizer rather than an exception here.

Side fields are lenient: numbers are accepted where text is expected and
unparseable numeric values become None.
"""

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from typing import Annotated, Any, Optional, List, Union


def _optional_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


OptionalNumber = Annotated[Optional[float], BeforeValidator(_optional_number)]


class SourceModel(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


# ============================================================================
# Cosmos catalog API
# ============================================================================

class CosmosBrand(SourceModel):
    name: Optional[str] = None
    picture: Optional[str] = None


class CosmosGpc(SourceModel):
    code: Optional[Union[str, int]] = None
    description: Optional[str] = None


class CosmosNcm(SourceModel):
    code: Optional[Union[str, int]] = None
    description: Optional[str] = None
    full_description: Optional[str] = None
    ex: Optional[str] = None


class CosmosCategory(SourceModel):
    id: Optional[int] = None
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CosmosCest(SourceModel):
    id: Optional[int] = None
    code: Optional[Union[str, int]] = None
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CosmosCommercialUnit(SourceModel):
    type_packaging: Optional[str] = None
    quantity_packaging: OptionalNumber = None
    ballast: OptionalNumber = None
    layer: OptionalNumber = None


class CosmosGtinEntry(SourceModel):
    gtin: Optional[Union[str, int]] = None
    commercial_unit: Optional[CosmosCommercialUnit] = None


class CosmosProduct(SourceModel):
    description: Optional[str] = None
    gtin: Optional[Union[str, int]] = None
    thumbnail: Optional[str] = None
    width: OptionalNumber = None
    height: OptionalNumber = None
    length: OptionalNumber = None
    net_weight: OptionalNumber = None
    gross_weight: OptionalNumber = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    release_date: Optional[str] = None
    price: Optional[str] = None
    avg_price: OptionalNumber = None
    max_price: OptionalNumber = None
    min_price: OptionalNumber = None
    gtins: Optional[List[CosmosGtinEntry]] = None
    origin: Optional[str] = None
    barcode_image: Optional[str] = None
    brand: Optional[CosmosBrand] = None
    gpc: Optional[CosmosGpc] = None
    ncm: Optional[CosmosNcm] = None
    cest: Optional[CosmosCest] = None
    category: Optional[CosmosCategory] = None


class CosmosCategoryPage(SourceModel):
    """Page of the category (GPC) listing"""
    code: Optional[Union[str, int]] = None
    english_description: Optional[str] = None
    portuguese: Optional[str] = None
    current_page: Optional[int] = None
    per_page: Optional[int] = None
    total_pages: Optional[int] = None
    total_count: Optional[int] = None
    next_page: Optional[Union[str, int]] = None
    products: Optional[list] = None


# ============================================================================
# OpenFoodFacts dump
# ============================================================================

class OpenFoodFactsProduct(SourceModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True, populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id")
    code: Optional[Union[str, int]] = None
    product_name: Optional[str] = None
    product_name_pt: Optional[str] = None
    product_name_en: Optional[str] = None
    generic_name: Optional[str] = None
    generic_name_pt: Optional[str] = None
    brands: Optional[str] = None
    countries: Optional[str] = None
    countries_tags: Optional[List[str]] = None
    categories: Optional[str] = None
    categories_tags: Optional[List[str]] = None
    quantity: Optional[str] = None
    product_quantity: Optional[Any] = None
    product_quantity_unit: Optional[str] = None
    image_url: Optional[str] = None
    image_front_url: Optional[str] = None
    ingredients_text: Optional[str] = None
    allergens: Optional[str] = None
    allergens_tags: Optional[List[str]] = None
    ingredients_analysis_tags: Optional[List[str]] = None
    labels_tags: Optional[List[str]] = None
