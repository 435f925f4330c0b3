"""FastAPI dependencies backed by objects built in the app lifespan."""

from fastapi import Request

from src.brands.registry import BrandRegistry
from src.config import AppConfig
from src.services.connector_service import ConnectorService
from src.services.geolocation_service import GeolocationService
from src.services.purchase_aggregator import PurchaseSessionStore


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_registry(request: Request) -> BrandRegistry:
    return request.app.state.registry


def get_connector_service(request: Request) -> ConnectorService:
    return request.app.state.connector_service


def get_session_store(request: Request) -> PurchaseSessionStore:
    return request.app.state.session_store


def get_geolocation(request: Request) -> GeolocationService:
    return request.app.state.geolocation


def get_session_id(request: Request) -> str:
    """Session id set by the session middleware."""
    return request.state.session_id


async def get_client_ip(request: Request) -> str:
    """Caller IP, honouring X-Forwarded-For when proxies are trusted.

    Resolves the caller's location on first sight so connector sessions
    opened for this IP carry an ``x-location`` header.
    """
    geolocation = get_geolocation(request)
    ip_address = geolocation.get_client_ip(request)
    await geolocation.resolve(ip_address)
    return ip_address
