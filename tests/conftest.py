"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- Brand configs for each sign-in variant
- A recording analytics service
"""

from pathlib import Path

import pytest

from src.brands.models import BrandConfig
from src.brands.registry import BrandRegistry
from src.services.analytics_service import AnalyticsService
from tests.helpers import RecordingObserver, make_brand

PROJECT_ROOT = Path(__file__).parent.parent


# ============================================================================
# Pytest Markers
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring a live connector service"
    )


# ============================================================================
# Brand Fixtures
# ============================================================================


@pytest.fixture
def hosted_brand() -> BrandConfig:
    """Brand signed in through a hosted-link popup."""
    return make_brand()


@pytest.fixture
def resource_brand() -> BrandConfig:
    """Brand signed in through an embedded resource."""
    return make_brand(brand_id="shelf", brand_name="Shelf", is_dpage=True, tools=["shelf_books"])


@pytest.fixture
def form_brand() -> BrandConfig:
    """Brand signed in through an inline credential form."""
    return make_brand(
        brand_id="supply",
        brand_name="Supply Co",
        schema=[
            {"name": "email", "type": "email", "prompt": "Email"},
            {"name": "password", "type": "password", "prompt": "Password"},
            {"name": "submit", "type": "click", "prompt": "Sign in"},
        ],
    )


@pytest.fixture
def registry(hosted_brand, resource_brand, form_brand) -> BrandRegistry:
    return BrandRegistry([hosted_brand, resource_brand, form_brand])


# ============================================================================
# Analytics Fixtures
# ============================================================================


@pytest.fixture
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def analytics(recorder) -> AnalyticsService:
    """AnalyticsService that only records."""
    return AnalyticsService(observers=[recorder])
