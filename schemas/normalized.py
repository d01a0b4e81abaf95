"""
Pydantic schema for the canonical product with validation
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from sqlalchemy import String
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SourceType
from models.product import Product

# Bounded text columns other than the identity; longer values are cut to fit
COLUMN_LIMITS: Dict[str, int] = {
    column.name: column.type.length
    for column in Product.__table__.columns
    if isinstance(column.type, String) and column.type.length
    and column.name not in ("barcode", "source")
}


class ProductCreate(BaseModel):
    """
    Canonical, source-agnostic product record.

    Produced by the normalizers. Image fields hold candidate source URLs
    until the image step (API flow only) swaps them for durable asset URLs.
    Optional numeric/text fields stay None when the source does not provide
    them; they are never defaulted to zero or empty strings.
    """

    model_config = ConfigDict(use_enum_values=True)

    # Identity (required)
    barcode: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1)

    # Descriptive
    brand: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    sku: Optional[str] = None
    manufacturer: Optional[str] = None
    origin_country: Optional[str] = None

    # Taxonomy
    gpc_code: Optional[str] = None
    gpc_description: Optional[str] = None
    gpc_english_description: Optional[str] = None
    gpc_portuguese_description: Optional[str] = None
    ncm_code: Optional[str] = None
    ncm_description: Optional[str] = None
    ncm_full_description: Optional[str] = None
    ncm_ex: Optional[str] = None
    cest_id: Optional[int] = None
    cest_code: Optional[str] = None
    cest_description: Optional[str] = None
    cest_parent_id: Optional[int] = None
    external_category_id: Optional[int] = None
    external_category_parent_id: Optional[int] = None
    external_category_name: Optional[str] = None

    # Physical
    quantity_label: Optional[str] = None
    package_quantity: Optional[float] = None
    package_unit: Optional[str] = None
    net_weight: Optional[float] = None
    net_weight_unit: Optional[str] = None
    volume: Optional[float] = None
    volume_unit: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    length: Optional[float] = None
    gross_weight: Optional[float] = None

    # Commercial
    price_text: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    price_avg: Optional[float] = None

    # Images
    image_url: Optional[str] = None
    brand_image_url: Optional[str] = None
    barcode_image_url: Optional[str] = None
    additional_images: List[str] = Field(default_factory=list)

    # Food attributes
    ingredients: Optional[str] = None
    allergens: Optional[str] = None
    is_vegan: Optional[bool] = None
    is_vegetarian: Optional[bool] = None
    is_gluten_free: Optional[bool] = None
    tags: List[str] = Field(default_factory=list)

    # Provenance
    source: SourceType
    external_id: Optional[str] = None
    external_url: Optional[str] = None
    source_payload: Optional[Dict[str, Any]] = None
    gtin_details: Optional[List[Dict[str, Any]]] = None
    release_date: Optional[datetime] = None
    source_created_at: Optional[datetime] = None
    source_updated_at: Optional[datetime] = None

    is_active: bool = True

    @field_validator("barcode", "name")
    @classmethod
    def strip_required(cls, v):
        """Required text must survive stripping"""
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty after stripping")
        return v

    @field_validator(*COLUMN_LIMITS, mode="before")
    @classmethod
    def truncate_to_column(cls, v, info: ValidationInfo):
        """Cut text to its column length"""
        if isinstance(v, str):
            return v[:COLUMN_LIMITS[info.field_name]]
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v):
        """Ensure tags is a list"""
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        if isinstance(v, list):
            return [str(t).strip() for t in v if str(t).strip()]
        return []

    def to_row(self) -> Dict[str, Any]:
        """Column values for the products table"""
        return self.model_dump()
