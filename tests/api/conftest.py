"""Fixtures for API route tests.

The app runs its real lifespan (bundled brands, session store); the
connector service is swapped for one backed by a FakeConnectorClient.
"""

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_connector_service
from src.api.main import create_app
from src.config import AppConfig, ConnectorConfig, FeatureConfig
from src.services.analytics_service import AnalyticsService
from src.services.connector_service import ConnectorService
from tests.helpers import FakeConnectorClient, FakePool


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        connector=ConnectorConfig(
            getgather_url="https://gg.example",
            app_host="https://app.example",
        ),
        features=FeatureConfig(allow_face_upload=True, sentry_dsn="https://key@sentry.example/1"),
    )


@pytest.fixture
def connector_client() -> FakeConnectorClient:
    return FakeConnectorClient()


@pytest.fixture
def fake_pool(connector_client) -> FakePool:
    return FakePool(connector_client)


@pytest.fixture
def app(app_config):
    return create_app(app_config)


@pytest.fixture
def test_client(app, app_config, fake_pool, recorder):
    """TestClient with the connector service backed by fakes."""
    with TestClient(app, raise_server_exceptions=False) as client:
        service = ConnectorService(
            fake_pool,
            app.state.registry,
            AnalyticsService(observers=[recorder]),
            app_config.connector,
        )
        app.dependency_overrides[get_connector_service] = lambda: service
        yield client
    app.dependency_overrides.clear()
