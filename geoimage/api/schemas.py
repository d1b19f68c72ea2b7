"""Request and response models for the HTTP API."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field

from geoimage.models import Coordinate, SubjectCategory
from geoimage.services.orchestrator import OrchestrationState
from geoimage.services.stages import RunStage


class PasswordRequest(BaseModel):
    password: str = ""


class CoordinatePayload(BaseModel):
    """Position as reported by the browser or picked on the map."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: float | None = None

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude, altitude=self.altitude)


class GenerateRequest(BaseModel):
    subject: SubjectCategory | None = None
    device_location: CoordinatePayload | None = None
    geolocation_error: str | None = None


class SubjectRequest(BaseModel):
    subject: SubjectCategory


class EnhanceWeather(BaseModel):
    temp: Union[float, str] = "unknown"
    description: str = "unknown conditions"
    cloudCover: float | None = None
    windSpeed: float | None = None
    creativeDescription: str | None = None


class EnhancePromptRequest(BaseModel):
    location: str | None = None
    country: str | None = None
    weather: EnhanceWeather | None = None
    subject: SubjectCategory | None = None
    coordinates: CoordinatePayload | None = None
    basePrompt: str | None = None


class GenerationRequest(BaseModel):
    prompt: str | None = None


class LocationPayload(BaseModel):
    latitude: float
    longitude: float
    altitude: float | None = None
    name: str | None = None
    country: str | None = None
    is_manually_set: bool = False


class WeatherPayload(BaseModel):
    temperature: Union[float, Literal["unknown"]]
    condition_text: str
    city: str
    country: str
    symbol: str | None = None
    cloud_cover_pct: float | None = None
    wind_speed: float | None = None
    precipitation: float | None = None
    narrative_text: str | None = None


class JobPayload(BaseModel):
    id: str
    status: str
    result_url: str | None = None
    error_reason: str | None = None


class PromptMetaPayload(BaseModel):
    time_of_day: str
    lighting_conditions: str
    location: str
    country: str
    subject: SubjectCategory


class StateSnapshot(BaseModel):
    """Read-only view of one session's orchestration state."""

    stage: RunStage
    subject: SubjectCategory
    location: LocationPayload | None = None
    weather: WeatherPayload | None = None
    prompt: str = ""
    prompt_enhanced: bool = False
    prompt_meta: PromptMetaPayload | None = None
    job: JobPayload | None = None
    image_url: str | None = None
    status_message: str = ""
    is_error: bool = False
    is_loading: bool = False
    can_check_status: bool = False
    run_id: int = 0

    @classmethod
    def from_state(cls, state: OrchestrationState) -> StateSnapshot:
        location = None
        if state.location is not None:
            coordinate = state.location.coordinate
            location = LocationPayload(
                latitude=coordinate.latitude,
                longitude=coordinate.longitude,
                altitude=coordinate.altitude,
                name=state.location.name,
                country=state.location.country,
                is_manually_set=state.location.is_manually_set,
            )
        weather = None
        if state.weather is not None:
            w = state.weather
            weather = WeatherPayload(
                temperature=w.temperature,
                condition_text=w.condition_text,
                city=w.city,
                country=w.country,
                symbol=w.symbol,
                cloud_cover_pct=w.cloud_cover_pct,
                wind_speed=w.wind_speed,
                precipitation=w.precipitation,
                narrative_text=w.narrative_text,
            )
        meta = None
        if state.prompt_meta is not None:
            m = state.prompt_meta
            meta = PromptMetaPayload(
                time_of_day=m.time_of_day,
                lighting_conditions=m.lighting_conditions,
                location=m.location,
                country=m.country,
                subject=m.subject,
            )
        job = None
        if state.job is not None:
            job = JobPayload(
                id=state.job.id,
                status=state.job.status,
                result_url=state.job.result_url,
                error_reason=state.job.error_reason,
            )
        return cls(
            stage=state.stage,
            subject=state.subject,
            location=location,
            weather=weather,
            prompt=state.prompt,
            prompt_enhanced=state.prompt_enhanced,
            prompt_meta=meta,
            job=job,
            image_url=state.image_url,
            status_message=state.status_message,
            is_error=state.is_error,
            is_loading=state.is_loading,
            can_check_status=state.can_check_status,
            run_id=state.run_id,
        )
