"""Current conditions enriched with a place name and an AI-written caption."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from geoimage.geo.geocoder import GeocodingError, NominatimGeocoder
from geoimage.models import UNKNOWN_COUNTRY, UNKNOWN_LOCATION, Coordinate, LocationInfo, WeatherSnapshot
from geoimage.nlp.chatgpt_client import ChatCompletionError, ChatGPTClient
from geoimage.weather.metno_client import MetNoClient, WeatherReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WeatherResult:
    """Raw report plus the snapshot handed to prompt composition."""

    location_name: str
    country: str | None
    report: WeatherReport
    snapshot: WeatherSnapshot


def fallback_narrative(location_name: str, report: WeatherReport) -> str:
    return f"Weather in {location_name}: {report.temperature}°C, {report.symbol_text}."


class WeatherService:
    """Combines MET Norway data with the chat model's descriptive caption."""

    def __init__(
        self,
        metno: MetNoClient,
        chat: ChatGPTClient,
        geocoder: NominatimGeocoder,
    ) -> None:
        self._metno = metno
        self._chat = chat
        self._geocoder = geocoder

    async def fetch(
        self,
        coordinate: Coordinate,
        *,
        location_name: str | None = None,
        country: str | None = None,
    ) -> WeatherResult:
        """Return current conditions; raises :class:`WeatherError` when MET Norway fails.

        When no name is supplied the coordinate is geocoded first. A geocoding or
        caption failure never fails the call.
        """

        if location_name is None:
            info = await self._lookup_place(coordinate)
            location_name, country = info.best_name, info.country

        report = await self._metno.current(
            coordinate.latitude,
            coordinate.longitude,
            coordinate.altitude,
        )

        try:
            narrative = await self._chat.describe_weather(location_name, report)
        except ChatCompletionError as exc:
            logger.warning("Weather caption unavailable, using plain description: %s", exc)
            narrative = fallback_narrative(location_name, report)

        snapshot = WeatherSnapshot(
            temperature=report.temperature,
            condition_text=report.symbol_text,
            city=location_name,
            country=country or UNKNOWN_COUNTRY,
            symbol=report.symbol,
            cloud_cover_pct=report.cloud_cover,
            wind_speed=report.wind_speed,
            precipitation=report.precipitation,
            narrative_text=narrative,
        )
        return WeatherResult(
            location_name=location_name,
            country=country,
            report=report,
            snapshot=snapshot,
        )

    async def _lookup_place(self, coordinate: Coordinate) -> LocationInfo:
        try:
            return await self._geocoder.reverse(coordinate.latitude, coordinate.longitude)
        except GeocodingError as exc:
            logger.warning("Could not name %s for weather lookup: %s", coordinate.label(), exc)
            return LocationInfo(best_name=UNKNOWN_LOCATION)
