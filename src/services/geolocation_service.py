"""Client IP extraction and cached caller location.

The connector service receives the caller's approximate location in an
``x-location`` header so retailer sites see a plausible region. Locations
come from the MaxMind GeoIP2 web service (when credentials are configured)
and are cached per IP for the life of the process.

Example:
    lookup = MaxMindLocationLookup(account_id, license_key)
    geolocation = GeolocationService(lookup=lookup)
    ip = geolocation.get_client_ip(request)
    await geolocation.resolve(ip)
    header = geolocation.location_header(ip)
"""

import json
import logging
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Request
from geoip2.errors import AddressNotFoundError, GeoIP2Error
from geoip2.webservice import AsyncClient

logger = logging.getLogger(__name__)

_LOCAL_ADDRESSES = frozenset({"unknown", "127.0.0.1", "::1"})


@dataclass(frozen=True)
class LocationData:
    """Approximate location for one client IP."""

    ip: str
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


LocationLookup = Callable[[str], Awaitable[Optional[LocationData]]]


class MaxMindLocationLookup:
    """City lookups against the MaxMind GeoIP2 web service."""

    def __init__(
        self,
        account_id: int,
        license_key: str,
        host: str = "geoip.maxmind.com",
        timeout_seconds: float = 3.0,
    ) -> None:
        self._client = AsyncClient(account_id, license_key, host=host, timeout=timeout_seconds)

    async def __call__(self, ip_address: str) -> LocationData | None:
        response = await self._client.city(ip_address)
        return LocationData(
            ip=ip_address,
            city=response.city.name,
            state=response.subdivisions.most_specific.name,
            country=response.country.iso_code,
            postal_code=response.postal.code,
        )

    async def aclose(self) -> None:
        await self._client.close()


class GeolocationService:
    """Resolves client IPs and serves cached locations."""

    def __init__(
        self,
        trust_proxy: bool = True,
        lookup: LocationLookup | None = None,
    ) -> None:
        """Initialize with an empty cache.

        Args:
            trust_proxy: Use X-Forwarded-For for client IP extraction.
                Only enable behind a trusted reverse proxy.
            lookup: Location source; without one only ``remember`` fills
                the cache.
        """
        self._trust_proxy = trust_proxy
        self._lookup = lookup
        self._cache: dict[str, LocationData] = {}

    def get_client_ip(self, request: Request) -> str:
        """Extract client IP from request.

        Args:
            request: Incoming request.

        Returns:
            First X-Forwarded-For hop when proxies are trusted, otherwise
            the socket peer address, or "unknown".
        """
        if self._trust_proxy:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def resolve(self, ip_address: str) -> LocationData | None:
        """Cached location for an IP, looking it up on a miss.

        Lookup failures are logged and yield None; callers proceed without
        a location.
        """
        if ip_address in _LOCAL_ADDRESSES:
            return None
        cached = self._cache.get(ip_address)
        if cached is not None or self._lookup is None:
            return cached

        try:
            location = await self._lookup(ip_address)
        except AddressNotFoundError:
            logger.debug("No location on record for %s", ip_address)
            return None
        except GeoIP2Error as e:
            logger.warning("Geolocation lookup failed for %s: %s", ip_address, e)
            return None
        except Exception as e:
            logger.warning("Geolocation lookup error for %s: %s", ip_address, e)
            return None

        if location is not None:
            self.remember(location)
        return location

    def remember(self, location: LocationData) -> None:
        """Cache a resolved location. Local addresses are ignored."""
        if location.ip in _LOCAL_ADDRESSES:
            return
        self._cache[location.ip] = location

    def get_client_location_from_cache(self, ip_address: str) -> LocationData | None:
        location = self._cache.get(ip_address)
        logger.debug(
            "Location cache %s for %s", "hit" if location else "miss", ip_address,
        )
        return location

    def location_header(self, ip_address: str) -> str:
        """Serialized location for the ``x-location`` header ("" if unknown)."""
        location = self.get_client_location_from_cache(ip_address)
        if location is None:
            return ""
        return json.dumps(asdict(location))

    async def aclose(self) -> None:
        close = getattr(self._lookup, "aclose", None)
        if close is not None:
            await close()
