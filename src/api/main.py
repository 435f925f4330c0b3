"""FastAPI application for the Data Portrait API.

Provides the application factory and the module-level ``app`` used by
uvicorn. The lifespan builds the brand registry, connector session pool,
connector service and per-session purchase store, and tears them down on
shutdown.
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.errors import app_error_response
from src.api.middleware.session import make_session_middleware
from src.api.routes import app_config, connectors, orders
from src.brands.registry import load_brands
from src.config import AppConfig, load_config
from src.errors import DataPortraitError
from src.services.analytics_service import AnalyticsService
from src.services.connector_pool import ConnectorSessionPool, make_client_factory
from src.services.connector_service import ConnectorService
from src.services.geolocation_service import GeolocationService, MaxMindLocationLookup
from src.services.purchase_aggregator import PurchaseSessionStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: build shared services, then close connector sessions."""
    config: AppConfig = app.state.config

    # --- Startup ---
    app.state.started_at = _time.time()
    if not config.connector.getgather_url:
        logger.warning(
            "connector.getgather_url is not set (GETGATHER_URL); connector calls will fail."
        )

    registry = load_brands(config.connector.brands_file, hidden=config.connector.hidden_brands)
    lookup = None
    if config.geolocation.enabled:
        lookup = MaxMindLocationLookup(
            config.geolocation.maxmind_account_id,
            config.geolocation.maxmind_license_key,
            host=config.geolocation.maxmind_host,
            timeout_seconds=config.geolocation.timeout_seconds,
        )
    else:
        logger.info("MaxMind credentials not set; x-location headers will be empty.")
    geolocation = GeolocationService(trust_proxy=config.server.trust_proxy, lookup=lookup)
    analytics = AnalyticsService()
    pool = ConnectorSessionPool(
        make_client_factory(config.connector, registry, geolocation),
        sweep_interval_seconds=config.connector.sweep_interval_seconds,
    )
    service = ConnectorService(pool, registry, analytics, config.connector)

    app.state.registry = registry
    app.state.geolocation = geolocation
    app.state.analytics = analytics
    app.state.pool = pool
    app.state.connector_service = service
    app.state.session_store = PurchaseSessionStore(
        excluded_brands=config.aggregation.dedup_excluded_brands,
        analytics=analytics,
        idle_ttl_seconds=config.aggregation.session_ttl_seconds,
    )

    pool.start()
    logger.info("Data Portrait API started with %d brands", len(registry))

    yield

    # --- Shutdown ---
    await service.shutdown()
    await pool.shutdown()
    await geolocation.aclose()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application config; loaded from file/env when omitted.

    Returns:
        Configured FastAPI app.
    """
    config = config or load_config()

    app = FastAPI(
        title="Data Portrait API",
        description="Connect retail accounts and aggregate purchase history",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config

    app.middleware("http")(make_session_middleware(config.server.session_cookie))

    # CORS allowlist is config-driven. If unset, CORS is disabled (same-origin only).
    if config.server.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    @app.exception_handler(DataPortraitError)
    async def data_portrait_error_handler(
        request: Request, exc: DataPortraitError
    ) -> JSONResponse:
        """Handle DataPortraitError exceptions with the standard envelope."""
        return app_error_response(exc)

    app.include_router(connectors.router)
    app.include_router(app_config.router)
    app.include_router(orders.router)

    @app.get("/health")
    def health_check(request: Request) -> dict:
        """Health check endpoint with process status.

        Returns:
            Dictionary with status, version, uptime and pooled session count.
        """
        started_at = getattr(request.app.state, "started_at", 0.0)
        uptime = int(_time.time() - started_at) if started_at else 0
        pool = getattr(request.app.state, "pool", None)

        try:
            version = _pkg_version("data-portrait")
        except Exception:
            version = "unknown"

        return {
            "status": "healthy",
            "version": version,
            "uptime_seconds": uptime,
            "connector_sessions": len(pool) if pool is not None else 0,
        }

    return app


app = create_app()
