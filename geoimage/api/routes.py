"""HTTP routes: collaborator endpoints and the per-session generation flow."""

from __future__ import annotations

import dataclasses
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from geoimage.api.auth import SessionDependency, get_context
from geoimage.api.context import AppContext
from geoimage.api.schemas import (
    CoordinatePayload,
    EnhancePromptRequest,
    GenerateRequest,
    GenerationRequest,
    StateSnapshot,
    SubjectRequest,
)
from geoimage.geo.geocoder import GeocodingError
from geoimage.geo.location import BrowserLocationSource
from geoimage.imggen.composer import PromptEnhancementError
from geoimage.imggen.prompt_builder import PromptContext
from geoimage.imggen.replicate_client import ReplicateRequestError
from geoimage.models import (
    UNKNOWN_CONDITIONS,
    UNKNOWN_COUNTRY,
    UNKNOWN_LOCATION,
    Coordinate,
    ResolvedLocation,
    Temperature,
    WeatherSnapshot,
)
from geoimage.services.orchestrator import Orchestrator
from geoimage.weather.metno_client import WeatherError

logger = logging.getLogger(__name__)

collaborators = APIRouter(prefix="/api", tags=["collaborators"], dependencies=[SessionDependency])
session = APIRouter(prefix="/api/session", tags=["session"])


def _upstream_status(exc: ReplicateRequestError) -> int:
    if exc.status_code is not None and exc.status_code >= 400:
        return exc.status_code
    return 502


def _temperature(value: float | str) -> Temperature:
    try:
        return float(value)
    except (TypeError, ValueError):
        return "unknown"


@collaborators.get("/geocode")
async def geocode(
    lat: float | None = Query(default=None),
    lon: float | None = Query(default=None),
    context: AppContext = Depends(get_context),
) -> JSONResponse:
    """Reverse-geocode a coordinate."""

    if lat is None or lon is None:
        return JSONResponse({"error": "Latitude and longitude are required"}, status_code=400)
    try:
        info = await context.geocoder.reverse(lat, lon)
    except GeocodingError as exc:
        logger.error("Error with reverse geocoding: %s", exc)
        return JSONResponse(
            {"error": f"Failed to geocode: {exc}", "location": {"best_name": UNKNOWN_LOCATION}},
            status_code=500,
        )
    return JSONResponse({"success": True, "location": dataclasses.asdict(info)})


@collaborators.get("/metno-weather")
async def metno_weather(
    lat: float | None = Query(default=None),
    lon: float | None = Query(default=None),
    altitude: float | None = Query(default=None),
    context: AppContext = Depends(get_context),
) -> JSONResponse:
    """Current conditions with a descriptive caption."""

    if lat is None or lon is None:
        return JSONResponse({"error": "Latitude and longitude are required"}, status_code=400)
    try:
        result = await context.weather.fetch(Coordinate(latitude=lat, longitude=lon, altitude=altitude))
    except WeatherError as exc:
        logger.error("Error with weather API: %s", exc)
        return JSONResponse({"error": f"Failed to fetch weather data: {exc}"}, status_code=500)

    report = result.report
    return JSONResponse(
        {
            "success": True,
            "location": result.location_name,
            "country": result.country,
            "weather": {
                "temperature": report.temperature,
                "windSpeed": report.wind_speed,
                "windDirection": report.wind_direction,
                "humidity": report.humidity,
                "pressure": report.pressure,
                "cloudCover": report.cloud_cover,
                "precipitation": report.precipitation,
                "symbol": report.symbol,
                "creativeDescription": result.snapshot.narrative_text,
            },
        }
    )


@collaborators.post("/enhance-prompt")
async def enhance_prompt(
    payload: EnhancePromptRequest,
    context: AppContext = Depends(get_context),
) -> JSONResponse:
    """Turn location, weather and subject into a model-written photography prompt."""

    if not payload.location or payload.weather is None or payload.subject is None or payload.coordinates is None:
        return JSONResponse({"error": "Missing required parameters"}, status_code=400)

    weather = payload.weather
    prompt_context = PromptContext(
        location=ResolvedLocation(
            coordinate=payload.coordinates.to_coordinate(),
            name=payload.location,
            country=payload.country,
        ),
        weather=WeatherSnapshot(
            temperature=_temperature(weather.temp),
            condition_text=weather.description or UNKNOWN_CONDITIONS,
            city=payload.location,
            country=payload.country or UNKNOWN_COUNTRY,
            cloud_cover_pct=weather.cloudCover,
            wind_speed=weather.windSpeed,
            narrative_text=weather.creativeDescription,
        ),
        subject=payload.subject,
    )
    try:
        prompt, meta = await context.composer.enhance(prompt_context)
    except PromptEnhancementError as exc:
        logger.error("Error generating enhanced prompt: %s", exc.__cause__ or exc)
        return JSONResponse({"error": "Failed to generate enhanced prompt"}, status_code=500)

    return JSONResponse(
        {
            "prompt": prompt,
            "meta": {
                "timeOfDay": meta.time_of_day,
                "lightingConditions": meta.lighting_conditions,
                "location": meta.location,
                "country": meta.country,
                "subject": meta.subject.value,
            },
        }
    )


@collaborators.post("/replicate")
async def start_generation(
    payload: GenerationRequest,
    context: AppContext = Depends(get_context),
) -> JSONResponse:
    """Submit a prompt to the image generation backend."""

    if not payload.prompt:
        return JSONResponse({"error": "Prompt is required"}, status_code=400)
    try:
        prediction = await context.replicate.create_prediction(payload.prompt)
    except ReplicateRequestError as exc:
        return JSONResponse({"error": str(exc)}, status_code=_upstream_status(exc))
    return JSONResponse({"id": prediction.id, "status": prediction.status}, status_code=201)


@collaborators.get("/replicate/status")
async def generation_status(
    id: str | None = Query(default=None),  # noqa: A002
    context: AppContext = Depends(get_context),
) -> JSONResponse:
    """Read the status of a submitted job."""

    if not id:
        return JSONResponse({"error": "Prediction id is required"}, status_code=400)
    try:
        prediction = await context.replicate.get_prediction(id)
    except ReplicateRequestError as exc:
        return JSONResponse({"error": str(exc)}, status_code=_upstream_status(exc))
    return JSONResponse(
        {
            "id": prediction.id,
            "status": prediction.status,
            "output": prediction.output,
            "error": prediction.error,
        }
    )


@session.get("", response_model=StateSnapshot)
async def get_state(orchestrator: Orchestrator = SessionDependency) -> StateSnapshot:
    return StateSnapshot.from_state(orchestrator.snapshot())


@session.post("/generate", response_model=StateSnapshot)
async def generate(
    payload: GenerateRequest,
    orchestrator: Orchestrator = SessionDependency,
) -> StateSnapshot:
    """Start a full run. Polling continues after the response is sent."""

    device = payload.device_location.to_coordinate() if payload.device_location else None
    source = BrowserLocationSource(device, payload.geolocation_error)
    state = await orchestrator.generate(source, subject=payload.subject)
    return StateSnapshot.from_state(state)


@session.post("/reroll", response_model=StateSnapshot)
async def reroll(
    payload: GenerateRequest | None = None,
    orchestrator: Orchestrator = SessionDependency,
) -> StateSnapshot:
    """Recompose and resubmit without re-acquiring location or weather."""

    source = None
    if payload is not None:
        device = payload.device_location.to_coordinate() if payload.device_location else None
        source = BrowserLocationSource(device, payload.geolocation_error)
    state = await orchestrator.reroll(source)
    return StateSnapshot.from_state(state)


@session.post("/subject", response_model=StateSnapshot)
async def select_subject(
    payload: SubjectRequest,
    orchestrator: Orchestrator = SessionDependency,
) -> StateSnapshot:
    state = await orchestrator.select_subject(payload.subject)
    return StateSnapshot.from_state(state)


@session.post("/location", response_model=StateSnapshot)
async def set_location(
    payload: CoordinatePayload,
    orchestrator: Orchestrator = SessionDependency,
) -> StateSnapshot:
    """Use a map-picked position for the following runs."""

    state = await orchestrator.set_manual_location(payload.to_coordinate())
    return StateSnapshot.from_state(state)


@session.delete("/location", response_model=StateSnapshot)
async def clear_location(orchestrator: Orchestrator = SessionDependency) -> StateSnapshot:
    return StateSnapshot.from_state(orchestrator.clear_manual_location())


@session.post("/check-status", response_model=StateSnapshot)
async def check_status(orchestrator: Orchestrator = SessionDependency) -> StateSnapshot:
    """Poll the live job once, outside the timer."""

    state = await orchestrator.check_status()
    return StateSnapshot.from_state(state)
