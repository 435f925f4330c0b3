"""Connector session pool keyed by (HTTP session, brand).

Holds at most one live ConnectorSessionClient per ``"{session_id}-{brand_id}"``
key. Clients are created and connected lazily; concurrent first requests for
the same key share one client. A background sweep closes and evicts clients
that have been idle longer than their TTL.

The pool is owned by the application lifespan: ``start()`` begins the sweep
task and ``shutdown()`` cancels it and closes every client. Tests drive
``sweep()`` directly.

Example:
    pool = ConnectorSessionPool(client_factory)
    pool.start()
    client = await pool.get("sess-1", "203.0.113.9", "amazon")
    ...
    await pool.shutdown()
"""

import asyncio
import contextlib
import logging
from typing import Callable

from src.brands.registry import BrandRegistry
from src.config import ConnectorConfig
from src.services.connector_client import ConnectorSessionClient
from src.services.geolocation_service import GeolocationService

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 10 * 60

ClientFactory = Callable[[str, str, str], ConnectorSessionClient]


def make_client_factory(
    config: ConnectorConfig,
    registry: BrandRegistry,
    geolocation: GeolocationService,
) -> ClientFactory:
    """Build a factory that creates unconnected clients from config.

    Args:
        config: Connector section of the app config.
        registry: Brand registry, used for each brand's MCP sub-path.
        geolocation: Source of the cached caller location header.

    Returns:
        Callable taking (session_id, client_ip, brand_id).
    """
    def _factory(session_id: str, client_ip: str, brand_id: str) -> ConnectorSessionClient:
        brand = registry.get(brand_id)
        return ConnectorSessionClient(
            session_id,
            client_ip,
            brand_id,
            base_url=config.getgather_url,
            mcp_path=brand.mcp_path,
            app_name=config.app_name,
            location_header=geolocation.location_header(client_ip),
            incognito=config.incognito,
            max_retries=config.max_retries,
            tool_timeout_seconds=config.tool_timeout_seconds,
            http_timeout_seconds=config.http_timeout_seconds,
            idle_ttl_seconds=config.idle_ttl_seconds,
        )

    return _factory


class ConnectorSessionPool:
    """Registry of live connector clients with idle eviction.

    Single-process only; all access happens on the FastAPI event loop.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        """Initialize an empty pool.

        Args:
            client_factory: Builds an unconnected client for a key.
            sweep_interval_seconds: Delay between idle sweeps.
        """
        self._client_factory = client_factory
        self._sweep_interval = sweep_interval_seconds
        self._clients: dict[str, ConnectorSessionClient] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    @staticmethod
    def make_key(session_id: str, brand_id: str) -> str:
        return f"{session_id}-{brand_id}"

    def __len__(self) -> int:
        return len(self._clients)

    def keys(self) -> list[str]:
        return list(self._clients)

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def get(self, session_id: str, client_ip: str, brand_id: str) -> ConnectorSessionClient:
        """Return the pooled client for a key, creating and connecting it if absent.

        Args:
            session_id: HTTP session identifier.
            client_ip: Caller IP (used only when a client is created).
            brand_id: Brand identifier.

        Returns:
            Connected ConnectorSessionClient.

        Raises:
            ConnectorConnectionError: If a new client fails to connect. No
                entry is left in the pool.
        """
        key = self.make_key(session_id, brand_id)
        client = self._clients.get(key)
        if client is not None:
            return client

        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                client = self._clients.get(key)
                if client is None:
                    client = self._client_factory(session_id, client_ip, brand_id)
                    await client.connect()
                    self._clients[key] = client
                    logger.info(
                        "Created connector session %s (pool size %d)", key, len(self._clients),
                    )
        finally:
            if key not in self._clients:
                self._discard_lock(key)
        return client

    async def remove(self, session_id: str, brand_id: str) -> bool:
        """Close and evict a single client.

        Returns:
            True if a client was evicted.
        """
        key = self.make_key(session_id, brand_id)
        client = self._clients.get(key)
        if client is None:
            return False
        await self._evict(key, client)
        return True

    async def sweep(self) -> list[str]:
        """Close and evict every expired client.

        Each client is closed before its entry is removed.

        Returns:
            Keys that were evicted.
        """
        evicted: list[str] = []
        for key, client in list(self._clients.items()):
            if not client.is_expired:
                continue
            await self._evict(key, client)
            evicted.append(key)
        if evicted:
            logger.info("Evicted %d idle connector sessions: %s", len(evicted), evicted)
        return evicted

    async def _evict(self, key: str, client: ConnectorSessionClient) -> None:
        try:
            await client.close()
        except Exception as e:
            logger.warning("Error closing connector session %s: %s", key, e)
        if self._clients.get(key) is client:
            del self._clients[key]
        self._discard_lock(key)

    def _discard_lock(self, key: str) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error("Connector session sweep failed: %s", e)

    def start(self) -> None:
        """Start the background sweep task. Idempotent.

        Must be called from a running event loop.
        """
        if self.is_running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("Connector session pool started (sweep every %ss)", self._sweep_interval)

    async def shutdown(self) -> None:
        """Stop the sweep task and close every client."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        for key, client in list(self._clients.items()):
            await self._evict(key, client)
        self._clients.clear()
        self._locks.clear()
        logger.info("Connector session pool shut down")
