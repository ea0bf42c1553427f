"""
Geolocation capture for report drafts
Wraps a device or network location query into a single result
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from roadwatch.core.config import settings
from roadwatch.core.errors import GeoError, GeoErrorKind
from roadwatch.core.geo_utils import Geocoordinate, is_valid_coordinate

logger = logging.getLogger(__name__)


# W3C GeolocationPositionError codes reported by browsers
POSITION_ERROR_CODES = {
    1: GeoErrorKind.PERMISSION_DENIED,
    2: GeoErrorKind.POSITION_UNAVAILABLE,
    3: GeoErrorKind.TIMEOUT,
}


class LocationProvider(ABC):
    """
    Source of the device's current position.

    Subclasses resolve exactly one coordinate or raise GeoError.
    """

    @abstractmethod
    async def current_position(self) -> Geocoordinate:
        """Resolve the current position or raise GeoError."""


class DevicePositionProvider(LocationProvider):
    """
    Position reported by the client device.

    The client either sends the coordinates it obtained or the
    error code its location API returned.
    """

    def __init__(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        error_code: Optional[int] = None
    ):
        self.latitude = latitude
        self.longitude = longitude
        self.error_code = error_code

    async def current_position(self) -> Geocoordinate:
        if self.error_code is not None:
            kind = POSITION_ERROR_CODES.get(self.error_code, GeoErrorKind.UNKNOWN)
            raise GeoError(kind)

        if self.latitude is None or self.longitude is None:
            raise GeoError(GeoErrorKind.POSITION_UNAVAILABLE)

        return _to_coordinate(self.latitude, self.longitude)


class IpLocationProvider(LocationProvider):
    """
    Coarse position from an IP geolocation service.

    Used when the client has no location capability of its own.
    """

    def __init__(
        self,
        ip_address: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize IP location provider.

        Args:
            ip_address: Address to resolve (None resolves the caller)
            base_url: Geolocation service URL
            client: Shared HTTP client
        """
        self.ip_address = ip_address
        self.base_url = (base_url or settings.ip_geolocation_url).rstrip("/")
        self._client = client

    async def current_position(self) -> Geocoordinate:
        url = f"{self.base_url}/{self.ip_address}" if self.ip_address else self.base_url

        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url)
        except httpx.TimeoutException as e:
            raise GeoError(GeoErrorKind.TIMEOUT) from e
        except httpx.HTTPError as e:
            logger.warning(f"IP geolocation request failed: {e}")
            raise GeoError(GeoErrorKind.POSITION_UNAVAILABLE) from e

        if response.status_code in (401, 403):
            raise GeoError(GeoErrorKind.PERMISSION_DENIED)
        if response.status_code != 200:
            raise GeoError(GeoErrorKind.POSITION_UNAVAILABLE)

        data = response.json()
        if data.get("status", "success") != "success":
            logger.info(f"IP geolocation failed for {self.ip_address}: {data.get('message')}")
            raise GeoError(GeoErrorKind.POSITION_UNAVAILABLE)

        return _to_coordinate(data.get("lat"), data.get("lon"))


def _to_coordinate(latitude, longitude) -> Geocoordinate:
    if not is_valid_coordinate(latitude, longitude):
        raise GeoError(GeoErrorKind.POSITION_UNAVAILABLE)
    return Geocoordinate(latitude=float(latitude), longitude=float(longitude))


async def acquire_location(
    provider: Optional[LocationProvider],
    timeout: Optional[float] = None
) -> Geocoordinate:
    """
    Acquire the current position.

    Args:
        provider: Location source (None means the device has none)
        timeout: Maximum wait in seconds

    Returns:
        Geocoordinate

    Raises:
        GeoError: with one of the GeoErrorKind reasons
    """
    if provider is None:
        raise GeoError(GeoErrorKind.UNSUPPORTED)

    wait = settings.geolocation_timeout_seconds if timeout is None else timeout

    try:
        coordinate = await asyncio.wait_for(provider.current_position(), timeout=wait)
    except GeoError:
        raise
    except asyncio.TimeoutError as e:
        raise GeoError(GeoErrorKind.TIMEOUT) from e
    except Exception as e:
        logger.error(f"Error getting location: {e}")
        raise GeoError(GeoErrorKind.UNKNOWN) from e

    logger.debug(f"Location acquired: {coordinate.to_tuple()}")
    return coordinate
