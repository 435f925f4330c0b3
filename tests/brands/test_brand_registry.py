"""Tests for BrandConfig and the YAML brand registry."""

import pytest
import yaml

from src.brands.registry import BrandRegistry, load_brands
from src.errors import BrandConfigError, UnknownBrandError
from tests.helpers import SIMPLE_TRANSFORM, make_brand


class TestBundledBrands:

    @pytest.fixture
    def registry(self):
        return load_brands(hidden=["officedepot"])

    def test_bundled_file_loads(self, registry):
        assert {"amazon", "wayfair", "goodreads", "officedepot", "garmin"} <= {
            b.brand_id for b in registry.all()
        }

    def test_hidden_brands_stay_connectable(self, registry):
        assert "officedepot" not in {b.brand_id for b in registry.visible()}
        assert registry.get("officedepot").brand_name == "Office Depot"
        assert "officedepot" in registry

    def test_amazon_uses_resource_signin(self, registry):
        amazon = registry.get("amazon")

        assert amazon.signin_variant == "resource"
        assert amazon.mcp_path == "mcp-shopping"
        assert amazon.history_tool == "amazon_get_purchase_history"
        assert amazon.details_tool is None
        assert amazon.data_transform.data_path == "purchases"

    def test_officedepot_uses_credential_form(self, registry):
        officedepot = registry.get("officedepot")

        assert officedepot.signin_variant == "form"
        assert [f.name for f in officedepot.credential_fields] == ["email", "password"]
        assert len(officedepot.fields) == 3
        assert officedepot.details_tool == "officedepot_get_order_history_details"

    def test_unknown_brand(self, registry):
        with pytest.raises(UnknownBrandError, match="Brand 'nope' not found"):
            registry.get("nope")


class TestBrandRegistry:

    def test_duplicate_ids_rejected(self):
        with pytest.raises(BrandConfigError, match="Duplicate brand_id 'acme'"):
            BrandRegistry([make_brand(), make_brand(brand_name="Other")])

    def test_hosted_link_variant(self):
        brand = make_brand(schema=[{"name": "go", "type": "click"}])

        assert brand.signin_variant == "hosted_link"
        assert brand.credential_fields == ()

    def test_len(self):
        assert len(BrandRegistry([make_brand(), make_brand(brand_id="b2")])) == 2


class TestLoadBrands:

    def test_custom_file(self, tmp_path):
        path = tmp_path / "brands.yaml"
        path.write_text(yaml.safe_dump({"brands": [{
            "brand_id": "shelf",
            "brand_name": "Shelf",
            "is_dpage": True,
            "tools": ["shelf_books"],
            "dataTransform": SIMPLE_TRANSFORM,
        }]}))

        registry = load_brands(path)

        assert [b.brand_id for b in registry.all()] == ["shelf"]
        assert registry.get("shelf").mcp_path == "mcp"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "brands.yaml"
        path.write_text("")

        assert len(load_brands(path)) == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_brands(tmp_path / "nope.yaml")

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "brands.yaml"
        path.write_text(yaml.safe_dump({"brands": [{"brand_id": "x"}]}))

        with pytest.raises(BrandConfigError, match="Invalid brand entry #0"):
            load_brands(path)
