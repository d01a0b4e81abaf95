"""
Unit tests for source normalizers
"""

from datetime import datetime

from ingestion.transformers.normalizer import CosmosNormalizer, OpenFoodFactsNormalizer
from schemas.pipeline import NormalizationStatus


class TestCosmosNormalizer:
    """Test Cosmos product mapping"""

    def test_maps_full_product(self, cosmos_product):
        """All source fields land in the canonical record"""
        normalizer = CosmosNormalizer(category_code="10000001")
        context = {
            "category_code": "10000001",
            "gpc_english_description": "Biscuits Cookies Sweet",
            "gpc_portuguese_description": "Biscoitos Doces",
        }

        result = normalizer.normalize(cosmos_product, context)

        assert result.is_ok
        product = result.product
        assert product.barcode == "7891000100103"
        assert product.name == "Biscoito Recheado Chocolate 140g"
        assert product.brand == "Marca Teste"
        assert product.manufacturer == "Marca Teste"
        assert product.category == "Alimentos"
        assert product.gpc_code == "10000001"
        assert product.gpc_english_description == "Biscuits Cookies Sweet"
        assert product.ncm_code == "19053100"
        assert product.cest_id == 1230
        assert product.cest_code == "1706200"
        assert product.package_unit == "Pacote"
        assert product.package_quantity == 1
        assert product.net_weight == 140
        assert product.price_min == 3.49
        assert product.price_avg == 4.1
        assert product.image_url == cosmos_product["thumbnail"]
        assert product.brand_image_url == cosmos_product["brand"]["picture"]
        assert product.barcode_image_url == cosmos_product["barcode_image"]
        assert product.source == "cosmos"
        assert product.external_id == "7891000100103"
        assert product.source_payload == cosmos_product
        assert product.source_created_at == datetime(2021, 3, 10, 12, 0, 0)

    def test_missing_optional_fields_stay_none(self):
        """Absent numbers and texts map to None, never zero or empty"""
        normalizer = CosmosNormalizer()

        result = normalizer.normalize({"gtin": "7890000000001", "description": "Produto"})

        assert result.is_ok
        product = result.product
        assert product.net_weight is None
        assert product.price_avg is None
        assert product.price_text is None
        assert product.brand is None
        assert product.image_url is None
        assert product.ncm_code is None
        assert product.package_quantity is None

    def test_name_falls_back_to_gtin(self):
        result = CosmosNormalizer().normalize({"gtin": "7890000000002"})

        assert result.is_ok
        assert result.product.name == "7890000000002"

    def test_missing_gtin_is_rejected(self):
        result = CosmosNormalizer().normalize({"description": "Sem codigo"})

        assert result.status == NormalizationStatus.REJECTED
        assert result.product is None
        assert "gtin" in result.reason

    def test_long_description_is_kept_and_name_cut_to_column(self):
        description = "D" * 600

        result = CosmosNormalizer().normalize({"gtin": "7890000000004", "description": description})

        assert result.is_ok
        assert result.product.name == "D" * 500
        assert result.product.description == description

    def test_unparseable_side_numbers_become_none(self):
        result = CosmosNormalizer().normalize(
            {"gtin": "7890000000005", "description": "Caixa", "width": "n/a", "avg_price": ""}
        )

        assert result.is_ok
        assert result.product.width is None
        assert result.product.price_avg is None

    def test_invalid_shape_is_rejected(self):
        """A shape error is a rejection, not an exception"""
        result = CosmosNormalizer().normalize({"gtin": "7890000000003", "brand": "not-an-object"})

        assert result.status == NormalizationStatus.REJECTED


class TestOpenFoodFactsNormalizer:
    """Test OpenFoodFacts dump mapping"""

    def test_scenario_minimal_brazilian_record(self):
        """Minimal Brazilian line maps to a product"""
        record = {"code": "7891000100103", "product_name_pt": "Arroz", "countries_tags": ["en:brazil"]}
        normalizer = OpenFoodFactsNormalizer()

        assert normalizer.matches(record)
        result = normalizer.normalize(record)

        assert result.is_ok
        assert result.product.barcode == "7891000100103"
        assert result.product.name == "Arroz"
        assert result.product.origin_country == "BR"
        assert result.product.source == "openfoodfacts"

    def test_record_without_code_is_rejected(self):
        record = {"product_name_pt": "Feijao", "countries_tags": ["en:brazil"]}

        result = OpenFoodFactsNormalizer().normalize(record)

        assert result.status == NormalizationStatus.REJECTED
        assert result.product is None

    def test_record_without_any_name_is_rejected(self):
        record = {"code": "7891000000001", "countries_tags": ["en:brazil"]}

        result = OpenFoodFactsNormalizer().normalize(record)

        assert result.status == NormalizationStatus.REJECTED

    def test_name_locale_priority(self):
        normalizer = OpenFoodFactsNormalizer()

        pt = normalizer.normalize({"code": "1", "product_name_pt": "Arroz", "product_name": "Rice"})
        generic = normalizer.normalize({"code": "1", "product_name": "Rice", "product_name_en": "Rice EN"})
        english = normalizer.normalize({"code": "1", "product_name_en": "Rice EN"})

        assert pt.product.name == "Arroz"
        assert generic.product.name == "Rice"
        assert english.product.name == "Rice EN"

    def test_full_record(self, off_record):
        result = OpenFoodFactsNormalizer().normalize(off_record)

        product = result.product
        assert product.name == "Arroz Branco Tipo 1"
        assert product.brand == "Marca Boa"
        assert product.category == "Cereais"
        assert product.net_weight == 1000
        assert product.net_weight_unit == "g"
        assert product.volume is None
        assert product.image_url == off_record["image_front_url"]
        assert product.is_vegan is True
        assert product.is_vegetarian is True
        assert product.is_gluten_free is True
        assert "en:no-gluten" in product.tags
        assert product.external_url == "https://world.openfoodfacts.org/product/7891000100103"

    def test_volume_normalized_to_millilitres(self):
        record = {"code": "1", "product_name": "Suco", "product_quantity": 1.5, "product_quantity_unit": "L"}

        product = OpenFoodFactsNormalizer().normalize(record).product

        assert product.volume == 1500
        assert product.volume_unit == "ml"
        assert product.net_weight is None

    def test_unknown_unit_leaves_quantities_empty(self):
        record = {"code": "1", "product_name": "Ovos", "product_quantity": "12", "product_quantity_unit": "un"}

        product = OpenFoodFactsNormalizer().normalize(record).product

        assert product.net_weight is None
        assert product.volume is None

    def test_diet_flags_unknown_without_tags(self):
        product = OpenFoodFactsNormalizer().normalize({"code": "1", "product_name": "Pao"}).product

        assert product.is_vegan is None
        assert product.is_vegetarian is None

    def test_non_vegan_tag_is_false(self):
        record = {"code": "1", "product_name": "Queijo", "ingredients_analysis_tags": ["en:non-vegan", "en:vegetarian"]}

        product = OpenFoodFactsNormalizer().normalize(record).product

        assert product.is_vegan is False
        assert product.is_vegetarian is True

    def test_gluten_allergen_clears_gluten_free(self):
        record = {"code": "1", "product_name": "Pao", "allergens_tags": ["en:gluten", "en:milk"]}

        product = OpenFoodFactsNormalizer().normalize(record).product

        assert product.is_gluten_free is False

    def test_matches_regional_filter(self):
        normalizer = OpenFoodFactsNormalizer()

        assert normalizer.matches({"countries_tags": ["en:brazil"]})
        assert normalizer.matches({"countries": "France, Brasil"})
        assert normalizer.matches({"code": "7894900011517"})
        assert not normalizer.matches({"code": "3017620422003", "countries_tags": ["en:france"]})
        assert not normalizer.matches({})

    def test_long_brand_is_cut_to_column(self):
        record = {"code": "7891000000003", "product_name": "Biscoito", "brands": "X" * 300}

        result = OpenFoodFactsNormalizer().normalize(record)

        assert result.is_ok
        assert result.product.brand == "X" * 255

    def test_numeric_id_is_accepted(self):
        record = {"_id": 7891000100103, "code": 7891000100103, "product_name": "Arroz"}

        result = OpenFoodFactsNormalizer().normalize(record)

        assert result.is_ok
        assert result.product.barcode == "7891000100103"
        assert result.product.external_id == "7891000100103"

    def test_long_quantity_label_is_kept(self):
        quantity = "12 pacotes de 500 g " * 10
        record = {"code": "7891000000004", "product_name": "Macarrao", "quantity": quantity}

        result = OpenFoodFactsNormalizer().normalize(record)

        assert result.is_ok
        assert result.product.quantity_label == quantity.strip()
