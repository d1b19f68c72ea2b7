"""Async reverse geocoding against the OpenStreetMap Nominatim API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from geoimage.config.settings import Settings
from geoimage.models import UNKNOWN_LOCATION, LocationInfo

logger = logging.getLogger(__name__)


class GeocodingError(RuntimeError):
    """Raised when a coordinate cannot be resolved to a place name."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class _NominatimAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    city: str | None = None
    town: str | None = None
    village: str | None = None
    hamlet: str | None = None
    county: str | None = None
    state: str | None = None
    region: str | None = None
    country: str | None = None
    country_code: str | None = None
    postcode: str | None = None


class _NominatimReverse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: _NominatimAddress | None = None
    display_name: str | None = None
    error: str | None = None


def _first(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def location_from_payload(payload: Any) -> LocationInfo:
    """Convert a Nominatim ``/reverse`` body into :class:`LocationInfo`.

    The best name prefers the most specific settlement and falls back through
    county and state before giving up with ``"Unknown location"``.
    """

    try:
        parsed = _NominatimReverse.model_validate(payload)
    except ValidationError as exc:
        raise GeocodingError("Geocoder returned an unexpected response shape.") from exc
    if parsed.error:
        raise GeocodingError(f"Geocoder error: {parsed.error}")

    address = parsed.address or _NominatimAddress()
    settlement = _first(address.city, address.town, address.village, address.hamlet)
    return LocationInfo(
        best_name=_first(settlement, address.county, address.state) or UNKNOWN_LOCATION,
        city=settlement,
        county=address.county,
        state=_first(address.state, address.region),
        country=address.country,
        country_code=address.country_code,
        postcode=address.postcode,
        display_name=parsed.display_name,
    )


class NominatimGeocoder:
    """Maps coordinates to a human readable place name."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.nominatim_base_url.rstrip("/"),
            timeout=settings.request_timeout,
            headers={
                "User-Agent": settings.http_user_agent,
                "Accept-Language": "en",
            },
            transport=transport,
        )

    async def reverse(self, latitude: float, longitude: float) -> LocationInfo:
        """Return the place at the given coordinate."""

        try:
            response = await self._client.get(
                "/reverse",
                params={"lat": latitude, "lon": longitude, "format": "json"},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise GeocodingError("Timed out waiting for the geocoder.") from exc
        except httpx.HTTPStatusError as exc:
            raise GeocodingError(
                f"Geocoding API error ({exc.response.status_code})",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GeocodingError(f"Geocoding request failed: {exc}") from exc
        except ValueError as exc:
            raise GeocodingError("Geocoder returned a non-JSON body.") from exc

        location = location_from_payload(payload)
        logger.info(
            "Reverse geocoding: found %r at %.4f,%.4f",
            location.best_name,
            latitude,
            longitude,
        )
        return location

    async def close(self) -> None:
        """Close the underlying HTTP client."""

        await self._client.aclose()
