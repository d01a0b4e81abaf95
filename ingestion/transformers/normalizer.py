"""
Transform raw source records into the canonical product schema.

Normalizers are pure: no I/O, no shared state. A record that cannot be
mapped is returned as a REJECTED result instead of raising, so the runner
can count it and move on.
"""

import re
from typing import Dict, Any, Optional, List, Iterable
from datetime import datetime, timezone
from pydantic import ValidationError
from core.exceptions import NormalizationError
from models.base import SourceType
from schemas.normalized import ProductCreate
from schemas.pipeline import NormalizationResult
from schemas.sources import CosmosProduct, OpenFoodFactsProduct
import logging

logger = logging.getLogger(__name__)


class Normalizer:
    """
    Base normalizer for one source.

    Handles:
    - Candidate filtering (matches)
    - Shape validation of the raw record
    - Schema mapping with None for missing optional values
    """

    source_type: SourceType

    def matches(self, raw_record: Dict[str, Any]) -> bool:
        """Whether the record is a candidate for this sync at all"""
        return True

    def normalize(
        self,
        raw_record: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> NormalizationResult:
        """
        Normalize a raw record into the canonical schema.

        Returns:
            NormalizationResult holding the ProductCreate, or the reason it
            was rejected
        """
        try:
            return self._normalize(raw_record, context or {})
        except ValidationError as e:
            return NormalizationResult.rejected(
                f"invalid {self.source_type.value} record: {e.error_count()} validation error(s)"
            )
        except (TypeError, ValueError, AttributeError) as e:
            error = NormalizationError(
                f"{type(e).__name__}: {e}",
                context={"source_name": self.source_type.value},
                original_exception=e
            )
            logger.debug(f"Normalization failed: {error}")
            return NormalizationResult.failed(error.message)

    def _normalize(self, raw_record: Dict[str, Any], context: Dict[str, Any]) -> NormalizationResult:
        raise NotImplementedError

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        """Strip strings; blank or non-string values become None"""
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @staticmethod
    def _first_text(*values: Any) -> Optional[str]:
        for value in values:
            text = Normalizer._clean_text(value)
            if text:
                return text
        return None

    @staticmethod
    def _parse_float(value: Any) -> Optional[float]:
        """Safely parse float value"""
        if value is None or value == "" or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_datetime(value: Any) -> Optional[datetime]:
        """Safely parse datetime value"""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
        # Stored as naive UTC
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed


class CosmosNormalizer(Normalizer):
    """
    Map Cosmos catalog products.

    Source fields are passed through; every optional field the API leaves
    out stays None. Image fields carry the candidate source URLs, which the
    image step replaces with durable asset URLs.
    """

    source_type = SourceType.COSMOS

    def __init__(self, category_code: Optional[str] = None):
        self.category_code = category_code

    @staticmethod
    def normalize_gtin(value: Any) -> Optional[str]:
        if value is None or isinstance(value, bool):
            return None
        normalized = str(value).strip()
        return normalized or None

    def _normalize(self, raw_record: Dict[str, Any], context: Dict[str, Any]) -> NormalizationResult:
        product = CosmosProduct.model_validate(raw_record)

        gtin = self.normalize_gtin(product.gtin)
        if not gtin:
            return NormalizationResult.rejected("missing gtin")

        category_code = context.get("category_code") or self.category_code
        packaging = None
        if product.gtins:
            packaging = product.gtins[0].commercial_unit

        brand_name = self._clean_text(product.brand.name) if product.brand else None

        return NormalizationResult.ok(ProductCreate(
            barcode=gtin,
            name=self._clean_text(product.description) or gtin,
            brand=brand_name,
            description=self._clean_text(product.description),
            category=product.category.description if product.category else None,
            manufacturer=brand_name,
            origin_country=self._clean_text(product.origin),
            quantity_label=packaging.type_packaging if packaging else None,
            package_quantity=packaging.quantity_packaging if packaging else None,
            package_unit=packaging.type_packaging if packaging else None,
            net_weight=product.net_weight,
            width=product.width,
            height=product.height,
            length=product.length,
            gross_weight=product.gross_weight,
            price_text=self._clean_text(product.price),
            price_min=product.min_price,
            price_max=product.max_price,
            price_avg=product.avg_price,
            gpc_code=self._clean_text(product.gpc.code) if product.gpc and product.gpc.code else category_code,
            gpc_description=product.gpc.description if product.gpc else None,
            gpc_english_description=context.get("gpc_english_description"),
            gpc_portuguese_description=context.get("gpc_portuguese_description"),
            ncm_code=self._clean_text(product.ncm.code) if product.ncm else None,
            ncm_description=product.ncm.description if product.ncm else None,
            ncm_full_description=product.ncm.full_description if product.ncm else None,
            ncm_ex=product.ncm.ex if product.ncm else None,
            cest_id=product.cest.id if product.cest else None,
            cest_code=self._clean_text(product.cest.code) if product.cest else None,
            cest_description=product.cest.description if product.cest else None,
            cest_parent_id=product.cest.parent_id if product.cest else None,
            external_category_id=product.category.id if product.category else None,
            external_category_parent_id=product.category.parent_id if product.category else None,
            external_category_name=product.category.description if product.category else None,
            release_date=self._parse_datetime(product.release_date),
            image_url=product.thumbnail,
            brand_image_url=product.brand.picture if product.brand else None,
            barcode_image_url=product.barcode_image,
            gtin_details=raw_record.get("gtins") if isinstance(raw_record.get("gtins"), list) else None,
            source=self.source_type,
            external_id=gtin,
            source_payload=raw_record,
            source_created_at=self._parse_datetime(product.created_at),
            source_updated_at=self._parse_datetime(product.updated_at),
        ))


class OpenFoodFactsNormalizer(Normalizer):
    """
    Map OpenFoodFacts dump records.

    Filtering policy:
    - Only records of the configured country are candidates (country tags,
      countries text, or the national GS1 barcode prefix)
    - A candidate without a display name or without a barcode is rejected

    Unit policy: weights are stored in grams and volumes in millilitres.

    Diet flags:
    - is_vegan / is_vegetarian: True or False only when the ingredient
      analysis tags say so, None otherwise
    - is_gluten_free: True whenever no allergen tag mentions gluten. This is
      an inference from the absence of allergen data, not a certification;
      a product with no allergen information at all is reported gluten-free.
      Consumers must not present it as a guarantee.
    """

    source_type = SourceType.OPENFOODFACTS
    PRODUCT_URL = "https://world.openfoodfacts.org/product/{code}"

    WEIGHT_UNITS = {"g": 1, "kg": 1000}
    VOLUME_UNITS = {"ml": 1, "l": 1000}

    def __init__(
        self,
        country_code: str = "BR",
        country_patterns: Iterable[str] = ("brazil", "brasil"),
        barcode_prefix: Optional[str] = "789"
    ):
        self.country_code = country_code
        self.country_regex = re.compile("|".join(re.escape(p) for p in country_patterns), re.IGNORECASE)
        self.barcode_prefix = barcode_prefix

    def matches(self, raw_record: Dict[str, Any]) -> bool:
        tags = raw_record.get("countries_tags")
        if isinstance(tags, list) and any(
            isinstance(t, str) and self.country_regex.search(t) for t in tags
        ):
            return True

        countries = raw_record.get("countries")
        if isinstance(countries, str) and self.country_regex.search(countries):
            return True

        code = raw_record.get("code")
        if self.barcode_prefix and isinstance(code, str) and code.startswith(self.barcode_prefix):
            return True

        return False

    def _normalize(self, raw_record: Dict[str, Any], context: Dict[str, Any]) -> NormalizationResult:
        product = OpenFoodFactsProduct.model_validate(raw_record)

        name = self._first_text(product.product_name_pt, product.product_name, product.product_name_en)
        barcode = self._clean_text(product.code)

        if not name or not barcode:
            return NormalizationResult.rejected("missing name or barcode")

        net_weight, net_weight_unit, volume, volume_unit = self._quantity(
            product.product_quantity, product.product_quantity_unit
        )

        analysis = product.ingredients_analysis_tags or []
        allergen_tags = product.allergens_tags or []
        labels = product.labels_tags or []

        return NormalizationResult.ok(ProductCreate(
            barcode=barcode,
            name=name,
            brand=self._first_token(product.brands),
            description=self._first_text(product.generic_name_pt, product.generic_name),
            category=self._category(product.categories, product.categories_tags),
            origin_country=self.country_code,
            quantity_label=self._clean_text(product.quantity),
            net_weight=net_weight,
            net_weight_unit=net_weight_unit,
            volume=volume,
            volume_unit=volume_unit,
            image_url=self._first_text(product.image_front_url, product.image_url),
            ingredients=self._clean_text(product.ingredients_text),
            allergens=self._clean_text(product.allergens),
            is_vegan=self._tag_flag(analysis, "en:vegan", "en:non-vegan"),
            is_vegetarian=self._tag_flag(analysis, "en:vegetarian", "en:non-vegetarian"),
            is_gluten_free=not any("gluten" in tag for tag in allergen_tags),
            tags=[*(product.categories_tags or []), *labels, *analysis],
            source=self.source_type,
            external_id=product.id or barcode,
            external_url=self.PRODUCT_URL.format(code=barcode),
            source_payload=raw_record,
        ))

    @staticmethod
    def _first_token(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return Normalizer._clean_text(value.split(",")[0])

    @classmethod
    def _category(cls, categories: Optional[str], categories_tags: Optional[List[str]]) -> Optional[str]:
        category = cls._first_token(categories)
        if category:
            return category
        if categories_tags:
            return cls._clean_text(categories_tags[0].split(":")[-1])
        return None

    @classmethod
    def _quantity(cls, value: Any, unit: Optional[str]):
        """Return (net_weight, net_weight_unit, volume, volume_unit)"""
        amount = cls._parse_float(value)
        unit = (unit or "").strip().lower()
        if amount is None or not unit:
            return None, None, None, None

        if unit in cls.WEIGHT_UNITS:
            return amount * cls.WEIGHT_UNITS[unit], "g", None, None
        if unit in cls.VOLUME_UNITS:
            return None, None, amount * cls.VOLUME_UNITS[unit], "ml"
        return None, None, None, None

    @staticmethod
    def _tag_flag(tags: List[str], positive: str, negative: str) -> Optional[bool]:
        if positive in tags:
            return True
        if negative in tags:
            return False
        return None
