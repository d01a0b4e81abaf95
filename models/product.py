from sqlalchemy import (
    Column, String, Integer, BigInteger, DateTime, Text, Float, Boolean, Index
)
from datetime import datetime
from models.base import Base, JSONType


class Product(Base):
    """
    Canonical catalog product, one row per barcode.

    The barcode (GTIN) is the only externally meaningful identity: two
    source records with the same barcode are the same product and are merged
    into this row, never duplicated.

    Field groups:
    - Descriptive: name, brand, description, category, manufacturer
    - Taxonomy: GPC, NCM (tax classification) and CEST codes/descriptions
    - Physical: dimensions, weights, volume, packaging
    - Commercial: price text and min/max/avg price
    - Images: durable asset URLs for product, brand and barcode pictures
    - Food: ingredients, allergens and nullable diet flags
    - Provenance: source name, external id/url and the raw source record
    """
    __tablename__ = "products"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    barcode = Column(String(64), nullable=False, unique=True, index=True)

    # Descriptive
    name = Column(String(500), nullable=False)
    brand = Column(String(255), nullable=True, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(255), nullable=True, index=True)
    subcategory = Column(String(255), nullable=True)
    sku = Column(String(100), nullable=True)
    manufacturer = Column(String(255), nullable=True)
    origin_country = Column(String(100), nullable=True)

    # Taxonomy
    gpc_code = Column(String(32), nullable=True, index=True)
    gpc_description = Column(Text, nullable=True)
    gpc_english_description = Column(Text, nullable=True)
    gpc_portuguese_description = Column(Text, nullable=True)
    ncm_code = Column(String(32), nullable=True, index=True)
    ncm_description = Column(Text, nullable=True)
    ncm_full_description = Column(Text, nullable=True)
    ncm_ex = Column(String(32), nullable=True)
    cest_id = Column(Integer, nullable=True)
    cest_code = Column(String(32), nullable=True)
    cest_description = Column(Text, nullable=True)
    cest_parent_id = Column(Integer, nullable=True)
    external_category_id = Column(Integer, nullable=True)
    external_category_parent_id = Column(Integer, nullable=True)
    external_category_name = Column(Text, nullable=True)

    # Physical
    quantity_label = Column(Text, nullable=True)
    package_quantity = Column(Float, nullable=True)
    package_unit = Column(String(50), nullable=True)
    net_weight = Column(Float, nullable=True)
    net_weight_unit = Column(String(10), nullable=True)
    volume = Column(Float, nullable=True)
    volume_unit = Column(String(10), nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)
    length = Column(Float, nullable=True)
    gross_weight = Column(Float, nullable=True)

    # Commercial
    price_text = Column(Text, nullable=True)
    price_min = Column(Float, nullable=True)
    price_max = Column(Float, nullable=True)
    price_avg = Column(Float, nullable=True)

    # Images
    image_url = Column(Text, nullable=True)
    brand_image_url = Column(Text, nullable=True)
    barcode_image_url = Column(Text, nullable=True)
    additional_images = Column(JSONType, nullable=True)

    # Food attributes (None = unknown)
    ingredients = Column(Text, nullable=True)
    allergens = Column(Text, nullable=True)
    is_vegan = Column(Boolean, nullable=True)
    is_vegetarian = Column(Boolean, nullable=True)
    is_gluten_free = Column(Boolean, nullable=True)
    tags = Column(JSONType, nullable=True)

    # Provenance
    source = Column(String(50), nullable=False, index=True)
    external_id = Column(String(255), nullable=True)
    external_url = Column(Text, nullable=True)
    source_payload = Column(JSONType, nullable=True)
    gtin_details = Column(JSONType, nullable=True)
    release_date = Column(DateTime, nullable=True)
    source_created_at = Column(DateTime, nullable=True)
    source_updated_at = Column(DateTime, nullable=True)

    # Sync metadata
    is_active = Column(Boolean, nullable=False, default=True)
    synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_product_source_external", "source", "external_id"),
        Index("idx_product_category_active", "category", "is_active"),
    )


IMAGE_FIELDS = ("image_url", "brand_image_url", "barcode_image_url")
