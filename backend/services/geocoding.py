import logging
from typing import Optional

import httpx

from core.config import GEOCODE_TIMEOUT_SECONDS, NOMINATIM_URL, NOMINATIM_USER_AGENT

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"


def readable_address(block_number: Optional[str] = None, area: Optional[str] = None) -> Optional[str]:
    parts = []
    if block_number:
        parts.append(f"Block {block_number}")
    if area:
        parts.append(area)
    return ", ".join(parts) or None


async def reverse_geocode(
    longitude: float,
    latitude: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Turn a coordinate pair into a display address; any failure gives ``Unknown Location``."""
    params = {"format": "json", "lat": latitude, "lon": longitude, "zoom": 18, "addressdetails": 1}
    try:
        async with httpx.AsyncClient(timeout=GEOCODE_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.get(
                NOMINATIM_URL,
                params=params,
                headers={"User-Agent": NOMINATIM_USER_AGENT},
            )
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Reverse geocoding (%s, %s) failed: %s", latitude, longitude, e)
        return UNKNOWN_LOCATION

    if not isinstance(data, dict):
        return UNKNOWN_LOCATION
    return data.get("display_name") or UNKNOWN_LOCATION


async def describe_location(
    block_number: Optional[str] = None,
    area: Optional[str] = None,
    coordinates=None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    readable = readable_address(block_number, area)
    if readable:
        return readable
    if coordinates:
        longitude, latitude = coordinates
        return await reverse_geocode(longitude, latitude, transport=transport)
    return UNKNOWN_LOCATION
