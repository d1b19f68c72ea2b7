"""Shared fixtures: settings and autospecced collaborators for the orchestrator."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import pytest
import pytest_asyncio
import pytest_mock

from geoimage.config.settings import Settings
from geoimage.geo.geocoder import NominatimGeocoder
from geoimage.imggen.composer import PromptComposer
from geoimage.imggen.prompt_builder import PromptBuilder
from geoimage.imggen.replicate_client import Prediction, ReplicateClient
from geoimage.models import LocationInfo, WeatherSnapshot
from geoimage.nlp.chatgpt_client import ChatGPTClient
from geoimage.services.orchestrator import Orchestrator
from geoimage.weather.metno_client import WeatherReport
from geoimage.weather.service import WeatherResult, WeatherService

OSLO_REPORT = WeatherReport(
    temperature=12.5,
    wind_speed=3.2,
    wind_direction=180.0,
    humidity=70.0,
    pressure=1012.0,
    cloud_cover=80.0,
    precipitation=0.0,
    symbol="partlycloudy_day",
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_password="image123",
        openai_api_key="test-openai",
        replicate_api_token="test-replicate",
        nominatim_base_url="https://nominatim.test",
        metno_base_url="https://metno.test/weatherapi/locationforecast/2.0",
        replicate_base_url="https://replicate.test/v1",
        poll_interval_seconds=3600,
    )


@pytest.fixture
def geocoder(mocker: pytest_mock.MockerFixture):
    mock = mocker.create_autospec(NominatimGeocoder, instance=True)
    mock.reverse.return_value = LocationInfo(best_name="Oslo", city="Oslo", country="Norway")
    return mock


@pytest.fixture
def weather(mocker: pytest_mock.MockerFixture):
    mock = mocker.create_autospec(WeatherService, instance=True)
    mock.fetch.return_value = WeatherResult(
        location_name="Oslo",
        country="Norway",
        report=OSLO_REPORT,
        snapshot=WeatherSnapshot(
            temperature=12.5,
            condition_text="partlycloudy day",
            city="Oslo",
            country="Norway",
            symbol="partlycloudy_day",
            cloud_cover_pct=80.0,
            wind_speed=3.2,
            precipitation=0.0,
            narrative_text="Soft grey light over the fjord.",
        ),
    )
    return mock


@pytest.fixture
def chat(mocker: pytest_mock.MockerFixture):
    mock = mocker.create_autospec(ChatGPTClient, instance=True)
    mock.complete.return_value = "A busy harbour promenade at dusk."
    return mock


@pytest.fixture
def generator(mocker: pytest_mock.MockerFixture):
    mock = mocker.create_autospec(ReplicateClient, instance=True)
    mock.create_prediction.return_value = Prediction(id="job-1", status="starting")
    mock.get_prediction.return_value = Prediction(id="job-1", status="processing")
    return mock


@pytest.fixture
def builder() -> PromptBuilder:
    return PromptBuilder(sign_text="Dentsu")


@pytest_asyncio.fixture
async def make_orchestrator(geocoder, weather, chat, generator, builder):
    created: list[Orchestrator] = []

    def _make(poll_interval: float = 3600) -> Orchestrator:
        orchestrator = Orchestrator(
            geocoder=geocoder,
            weather=weather,
            composer=PromptComposer(builder, chat),
            generator=generator,
            poll_interval=poll_interval,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        await orchestrator.close()
    await asyncio.sleep(0)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _spin() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_spin(), timeout)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Spin the event loop until a predicate holds."""

    return _wait_until
