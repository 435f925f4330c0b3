"""Brand configuration for connectable retailers and services."""

from src.brands.models import BrandConfig, SchemaField, SignInVariant
from src.brands.registry import DEFAULT_BRANDS_FILE, BrandRegistry, load_brands

__all__ = [
    "BrandConfig",
    "BrandRegistry",
    "DEFAULT_BRANDS_FILE",
    "SchemaField",
    "SignInVariant",
    "load_brands",
]
