"""Async client for the MET Norway Locationforecast API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from geoimage.config.settings import Settings

logger = logging.getLogger(__name__)


class WeatherError(RuntimeError):
    """Raised when current conditions cannot be fetched or parsed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class WeatherReport:
    """Instant conditions from the first forecast time step."""

    temperature: float
    wind_speed: float | None
    wind_direction: float | None
    humidity: float | None
    pressure: float | None
    cloud_cover: float | None
    precipitation: float
    symbol: str

    @property
    def symbol_text(self) -> str:
        return self.symbol.replace("_", " ")


class _InstantDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    air_temperature: float
    wind_speed: float | None = None
    wind_from_direction: float | None = None
    relative_humidity: float | None = None
    air_pressure_at_sea_level: float | None = None
    cloud_area_fraction: float | None = None


class _Instant(BaseModel):
    details: _InstantDetails


class _NextHourSummary(BaseModel):
    symbol_code: str = "unknown"


class _NextHourDetails(BaseModel):
    precipitation_amount: float = 0.0


class _NextHour(BaseModel):
    summary: _NextHourSummary = _NextHourSummary()
    details: _NextHourDetails = _NextHourDetails()


class _StepData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    instant: _Instant
    next_1_hours: _NextHour | None = None


class _TimeStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: _StepData


class _Properties(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timeseries: list[_TimeStep]


class _Forecast(BaseModel):
    model_config = ConfigDict(extra="ignore")

    properties: _Properties


def report_from_payload(payload: Any) -> WeatherReport:
    """Extract the current conditions from a Locationforecast ``compact`` body."""

    try:
        forecast = _Forecast.model_validate(payload)
    except ValidationError as exc:
        raise WeatherError("Weather API returned an unexpected response shape.") from exc
    if not forecast.properties.timeseries:
        raise WeatherError("Weather API returned an empty timeseries.")

    data = forecast.properties.timeseries[0].data
    details = data.instant.details
    next_hour = data.next_1_hours
    return WeatherReport(
        temperature=details.air_temperature,
        wind_speed=details.wind_speed,
        wind_direction=details.wind_from_direction,
        humidity=details.relative_humidity,
        pressure=details.air_pressure_at_sea_level,
        cloud_cover=details.cloud_area_fraction,
        precipitation=next_hour.details.precipitation_amount if next_hour else 0.0,
        symbol=next_hour.summary.symbol_code if next_hour else "unknown",
    )


class MetNoClient:
    """Fetches the forecast for a coordinate and returns the current step."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.metno_base_url.rstrip("/"),
            timeout=settings.request_timeout,
            headers={"User-Agent": settings.http_user_agent},
            transport=transport,
        )

    async def current(
        self,
        latitude: float,
        longitude: float,
        altitude: float | None = None,
    ) -> WeatherReport:
        """Return current conditions at the coordinate."""

        params: dict[str, Any] = {"lat": latitude, "lon": longitude}
        if altitude is not None:
            params["altitude"] = round(altitude)
        try:
            response = await self._client.get("/compact", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise WeatherError("Timed out waiting for MET Norway.") from exc
        except httpx.HTTPStatusError as exc:
            raise WeatherError(
                f"MET Norway API error ({exc.response.status_code})",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise WeatherError(f"MET Norway request failed: {exc}") from exc
        except ValueError as exc:
            raise WeatherError("MET Norway returned a non-JSON body.") from exc

        return report_from_payload(payload)

    async def close(self) -> None:
        """Close the underlying HTTP client."""

        await self._client.aclose()
