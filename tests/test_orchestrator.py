"""Behavioural tests for the generation orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from geoimage.geo.geocoder import GeocodingError
from geoimage.geo.location import BrowserLocationSource
from geoimage.imggen.prompt_builder import SUBJECT_DESCRIPTIONS, PromptContext
from geoimage.imggen.replicate_client import NON_JSON_MESSAGE, Prediction, ReplicateRequestError
from geoimage.models import Coordinate, LocationInfo, ResolvedLocation, SubjectCategory
from geoimage.nlp.chatgpt_client import ChatCompletionError
from geoimage.services.stages import RunStage
from geoimage.weather.metno_client import WeatherError

OSLO = Coordinate(latitude=59.9139, longitude=10.7522)


def _device(coordinate: Coordinate = OSLO) -> BrowserLocationSource:
    return BrowserLocationSource(coordinate)


def _poll_tasks() -> list[asyncio.Task]:
    return [task for task in asyncio.all_tasks() if task.get_name().startswith("poll:") and not task.done()]


@pytest.mark.asyncio
async def test_generate_submits_job_and_starts_polling(make_orchestrator, generator) -> None:
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(_device(), subject=SubjectCategory.NATURE)

    assert state.stage is RunStage.POLLING
    assert state.location == ResolvedLocation(coordinate=OSLO, name="Oslo", country="Norway")
    assert state.weather is not None and state.weather.temperature == 12.5
    assert state.prompt_enhanced
    assert state.prompt.startswith("A busy harbour promenade at dusk.")
    assert state.job is not None and state.job.id == "job-1"
    assert state.can_check_status
    assert state.is_loading
    assert orchestrator.polling_active
    generator.create_prediction.assert_awaited_once_with(state.prompt)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        WeatherError("Timed out waiting for MET Norway."),
        WeatherError("MET Norway API error (503)", status_code=503),
        WeatherError("Weather API returned an unexpected response shape."),
    ],
)
async def test_weather_failure_substitutes_unknown(make_orchestrator, weather, generator, error) -> None:
    weather.fetch.side_effect = error
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(_device())

    assert state.weather is not None
    assert state.weather.temperature == "unknown"
    assert state.weather.condition_text == "unknown conditions"
    assert state.weather.city == "Oslo"
    assert state.stage is RunStage.POLLING
    generator.create_prediction.assert_awaited_once()


@pytest.mark.asyncio
async def test_weather_lookup_reuses_resolved_name(make_orchestrator, weather, geocoder) -> None:
    orchestrator = make_orchestrator()

    await orchestrator.generate(_device())

    weather.fetch.assert_awaited_once_with(OSLO, location_name="Oslo", country="Norway")
    geocoder.reverse.assert_awaited_once()


@pytest.mark.asyncio
async def test_geocoding_failure_is_absorbed(make_orchestrator, geocoder, weather) -> None:
    geocoder.reverse.side_effect = GeocodingError("Geocoding API error (500)", status_code=500)
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(_device())

    assert state.location is not None and state.location.name is None
    assert state.stage is RunStage.POLLING
    weather.fetch.assert_awaited_once_with(OSLO, location_name="Unknown location", country=None)


@pytest.mark.asyncio
async def test_enrichment_failure_uses_fallback_prompt_exactly(make_orchestrator, chat, builder, generator) -> None:
    chat.complete.side_effect = ChatCompletionError("Chat model returned an empty response.")
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(_device(), subject=SubjectCategory.HUMANS)

    expected = builder.build_fallback(
        PromptContext(location=state.location, weather=state.weather, subject=SubjectCategory.HUMANS)
    )
    assert state.prompt == expected
    assert not state.prompt_enhanced
    assert state.prompt_meta is None
    generator.create_prediction.assert_awaited_once_with(expected)


@pytest.mark.asyncio
async def test_geolocation_denial_fails_the_run(make_orchestrator, geocoder, generator) -> None:
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(BrowserLocationSource(error="User denied Geolocation"))

    assert state.stage is RunStage.FAILED
    assert state.is_error
    assert not state.is_loading
    assert state.status_message == "Geolocation error: User denied Geolocation"
    geocoder.reverse.assert_not_awaited()
    generator.create_prediction.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_geolocation_support_fails_the_run(make_orchestrator) -> None:
    orchestrator = make_orchestrator()

    state = await orchestrator.generate()

    assert state.stage is RunStage.FAILED
    assert state.status_message == "Geolocation is not supported by your browser."


@pytest.mark.asyncio
async def test_manual_location_skips_device_geolocation(make_orchestrator, geocoder, mocker) -> None:
    geocoder.reverse.return_value = LocationInfo(best_name="Bergen", country="Norway")
    orchestrator = make_orchestrator()
    bergen = Coordinate(latitude=60.3913, longitude=5.3221)

    state = await orchestrator.set_manual_location(bergen)
    assert state.location is not None
    assert state.location.name == "Bergen"
    assert state.location.is_manually_set

    source = mocker.create_autospec(BrowserLocationSource, instance=True)
    state = await orchestrator.generate(source)

    source.current_position.assert_not_awaited()
    assert state.location.coordinate == bergen
    assert state.stage is RunStage.POLLING
    geocoder.reverse.assert_awaited_once()


@pytest.mark.asyncio
async def test_manual_location_name_failure_keeps_coordinate(make_orchestrator, geocoder) -> None:
    geocoder.reverse.side_effect = GeocodingError("down")
    orchestrator = make_orchestrator()

    state = await orchestrator.set_manual_location(OSLO)

    assert state.location == ResolvedLocation(coordinate=OSLO, is_manually_set=True)
    assert not state.is_error


@pytest.mark.asyncio
async def test_clearing_manual_location_uses_device_again(make_orchestrator, geocoder) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.set_manual_location(Coordinate(latitude=60.0, longitude=5.0))

    orchestrator.clear_manual_location()
    state = await orchestrator.generate(_device())

    assert state.location is not None
    assert state.location.coordinate == OSLO
    assert not state.location.is_manually_set


@pytest.mark.asyncio
async def test_second_run_leaves_exactly_one_timer(make_orchestrator, generator) -> None:
    generator.create_prediction.side_effect = [
        Prediction(id="job-1", status="starting"),
        Prediction(id="job-2", status="starting"),
    ]
    orchestrator = make_orchestrator()

    await orchestrator.generate(_device())
    first_timer = orchestrator.timer
    state = await orchestrator.generate(_device())
    await asyncio.sleep(0.01)

    assert state.job is not None and state.job.id == "job-2"
    assert first_timer is not None and not first_timer.active
    assert orchestrator.polling_active
    assert [task.get_name() for task in _poll_tasks()] == ["poll:job-2"]


@pytest.mark.asyncio
async def test_polling_follows_job_to_success(make_orchestrator, generator, wait_until) -> None:
    generator.get_prediction.side_effect = [
        Prediction(id="job-1", status="processing"),
        Prediction(id="job-1", status="succeeded", output=["https://cdn.test/out-0.webp"]),
    ]
    orchestrator = make_orchestrator(poll_interval=0.01)

    await orchestrator.generate(_device())
    await wait_until(lambda: orchestrator.snapshot().stage.is_terminal)
    await asyncio.sleep(0.05)

    state = orchestrator.snapshot()
    assert state.stage is RunStage.SUCCEEDED
    assert state.image_url == "https://cdn.test/out-0.webp"
    assert state.job is not None and state.job.result_url == "https://cdn.test/out-0.webp"
    assert state.status_message == "Image generation successful!"
    assert not state.is_loading
    assert not state.can_check_status
    assert not orchestrator.polling_active
    assert generator.get_prediction.await_count == 2
    assert _poll_tasks() == []


@pytest.mark.asyncio
async def test_success_without_output_fails(make_orchestrator, generator) -> None:
    generator.get_prediction.return_value = Prediction(id="job-1", status="succeeded", output=[])
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.check_status()

    assert state.stage is RunStage.FAILED
    assert state.status_message == "Prediction succeeded but no output URL was found."
    assert state.image_url is None
    assert not orchestrator.polling_active


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "canceled"])
async def test_failed_job_reports_reason(make_orchestrator, generator, status: str) -> None:
    generator.get_prediction.return_value = Prediction(id="job-1", status=status, error="NSFW content detected")
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.check_status()

    assert state.stage is RunStage.FAILED
    assert state.status_message == f"Image generation {status}. Reason: NSFW content detected"
    assert not state.can_check_status
    assert not orchestrator.polling_active


@pytest.mark.asyncio
async def test_client_error_while_polling_stops_checks(make_orchestrator, generator) -> None:
    generator.get_prediction.side_effect = ReplicateRequestError("Not found", status_code=404)
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.check_status()

    assert state.stage is RunStage.FAILED
    assert state.is_error
    assert state.status_message == "Failed to fetch status: Not found Stopping checks."
    assert not state.can_check_status
    assert not orchestrator.polling_active


@pytest.mark.asyncio
async def test_server_error_while_polling_keeps_polling(make_orchestrator, generator) -> None:
    generator.get_prediction.side_effect = [
        ReplicateRequestError("Request failed (Status: 500)", status_code=500),
        Prediction(id="job-1", status="processing"),
    ]
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.check_status()
    assert state.is_error
    assert state.stage is RunStage.POLLING
    assert state.can_check_status
    assert orchestrator.polling_active

    state = await orchestrator.check_status()
    assert not state.is_error
    assert state.job is not None and state.job.status == "processing"
    assert orchestrator.polling_active


@pytest.mark.asyncio
async def test_unexpected_status_keeps_polling(make_orchestrator, generator) -> None:
    generator.get_prediction.return_value = Prediction(id="job-1", status="queued")
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.check_status()

    assert state.status_message == "Unexpected prediction status: queued"
    assert not state.is_error
    assert state.can_check_status
    assert orchestrator.polling_active


@pytest.mark.asyncio
async def test_submission_non_json_response_fails_run(make_orchestrator, generator) -> None:
    generator.create_prediction.side_effect = ReplicateRequestError(NON_JSON_MESSAGE, status_code=502)
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(_device())

    assert state.stage is RunStage.FAILED
    assert state.status_message == f"Image generation error: {NON_JSON_MESSAGE}"
    assert state.job is None
    assert not orchestrator.polling_active


@pytest.mark.asyncio
async def test_terminal_prediction_at_submission_is_handled(make_orchestrator, generator) -> None:
    generator.create_prediction.return_value = Prediction(
        id="job-1",
        status="succeeded",
        output="https://cdn.test/instant.webp",
    )
    orchestrator = make_orchestrator()

    state = await orchestrator.generate(_device())

    assert state.stage is RunStage.SUCCEEDED
    assert state.image_url == "https://cdn.test/instant.webp"
    assert not orchestrator.polling_active
    generator.get_prediction.assert_not_awaited()


@pytest.mark.asyncio
async def test_check_status_without_job_reports_error(make_orchestrator, generator) -> None:
    orchestrator = make_orchestrator()

    state = await orchestrator.check_status()

    assert state.is_error
    assert state.status_message == "No active generation task ID found."
    generator.get_prediction.assert_not_awaited()


@pytest.mark.asyncio
async def test_subject_change_recomposes_without_reacquiring(
    make_orchestrator,
    geocoder,
    weather,
    chat,
    generator,
) -> None:
    chat.complete.side_effect = ChatCompletionError("offline")
    orchestrator = make_orchestrator()
    first = await orchestrator.generate(_device(), subject=SubjectCategory.NATURE)

    state = await orchestrator.select_subject(SubjectCategory.PORTRAIT)

    assert state.subject is SubjectCategory.PORTRAIT
    assert state.prompt != first.prompt
    assert SUBJECT_DESCRIPTIONS[SubjectCategory.PORTRAIT] in state.prompt
    assert state.location == first.location
    assert state.weather == first.weather
    geocoder.reverse.assert_awaited_once()
    weather.fetch.assert_awaited_once()
    generator.create_prediction.assert_awaited_once()


@pytest.mark.asyncio
async def test_subject_before_any_run_only_records_choice(make_orchestrator, chat) -> None:
    orchestrator = make_orchestrator()

    state = await orchestrator.select_subject(SubjectCategory.HUMANS)

    assert state.subject is SubjectCategory.HUMANS
    assert state.prompt == ""
    assert state.status_message == "Selected subject type: humans"
    chat.complete.assert_not_awaited()


@pytest.mark.asyncio
async def test_reroll_reuses_location_and_weather(make_orchestrator, geocoder, weather, generator) -> None:
    generator.create_prediction.side_effect = [
        Prediction(id="job-1", status="starting"),
        Prediction(id="job-2", status="starting"),
    ]
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.reroll()

    assert state.job is not None and state.job.id == "job-2"
    assert state.stage is RunStage.POLLING
    geocoder.reverse.assert_awaited_once()
    weather.fetch.assert_awaited_once()
    assert generator.create_prediction.await_count == 2


@pytest.mark.asyncio
async def test_reroll_without_context_runs_full_pipeline(make_orchestrator, geocoder) -> None:
    orchestrator = make_orchestrator()

    state = await orchestrator.reroll(_device())

    assert state.stage is RunStage.POLLING
    geocoder.reverse.assert_awaited_once()


@pytest.mark.asyncio
async def test_superseded_run_results_are_discarded(make_orchestrator, geocoder, generator) -> None:
    gate = asyncio.Event()
    calls = 0

    async def reverse(latitude: float, longitude: float) -> LocationInfo:
        nonlocal calls
        calls += 1
        if calls == 1:
            await gate.wait()
            return LocationInfo(best_name="Stale", country="Nowhere")
        return LocationInfo(best_name="Fresh", country="Norway")

    geocoder.reverse.side_effect = reverse
    orchestrator = make_orchestrator()

    stale = asyncio.create_task(orchestrator.generate(_device()))
    for _ in range(5):
        await asyncio.sleep(0)
    fresh = await orchestrator.generate(_device())
    gate.set()
    await stale

    state = orchestrator.snapshot()
    assert fresh.location is not None and fresh.location.name == "Fresh"
    assert state.location is not None and state.location.name == "Fresh"
    assert state.run_id == fresh.run_id
    generator.create_prediction.assert_awaited_once()
    assert len(_poll_tasks()) == 1


@pytest.mark.asyncio
async def test_close_stops_polling(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    await orchestrator.close()
    await asyncio.sleep(0.01)

    assert not orchestrator.polling_active
    assert not orchestrator.snapshot().is_loading
    assert _poll_tasks() == []


@pytest.mark.asyncio
async def test_snapshot_is_detached_from_live_state(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    snapshot = orchestrator.snapshot()
    assert snapshot.job is not None
    snapshot.job.output.append("https://cdn.test/tampered.webp")
    snapshot.status_message = "changed"

    live = orchestrator.snapshot()
    assert live.job is not None and live.job.output == []
    assert live.status_message != "changed"


@pytest.mark.asyncio
async def test_manual_location_supersedes_run_awaiting_weather(make_orchestrator, weather, generator) -> None:
    gate = asyncio.Event()
    device_weather = weather.fetch.return_value

    async def fetch(coordinate, *, location_name=None, country=None):
        if coordinate == OSLO:
            await gate.wait()
        return device_weather

    weather.fetch.side_effect = fetch
    orchestrator = make_orchestrator()
    sydney = Coordinate(latitude=-33.86, longitude=151.21)

    pending = asyncio.create_task(orchestrator.generate(_device()))
    for _ in range(5):
        await asyncio.sleep(0)
    await orchestrator.set_manual_location(sydney)
    gate.set()
    await pending

    state = orchestrator.snapshot()
    assert state.location is not None and state.location.coordinate == sydney
    assert state.weather is None
    assert state.stage is RunStage.IDLE
    assert not state.is_loading
    generator.create_prediction.assert_not_awaited()

    state = await orchestrator.generate(_device())

    assert state.location.coordinate == sydney
    assert weather.fetch.await_args.args == (sydney,)
    generator.create_prediction.assert_awaited_once()


@pytest.mark.asyncio
async def test_manual_location_leaves_submitted_job_polling(make_orchestrator) -> None:
    orchestrator = make_orchestrator()
    await orchestrator.generate(_device())

    state = await orchestrator.set_manual_location(Coordinate(latitude=60.0, longitude=5.0))

    assert state.stage is RunStage.POLLING
    assert orchestrator.polling_active


@pytest.mark.asyncio
async def test_timer_stops_after_client_error(make_orchestrator, generator, wait_until) -> None:
    generator.get_prediction.side_effect = ReplicateRequestError("Not found", status_code=404)
    orchestrator = make_orchestrator(poll_interval=0.01)

    await orchestrator.generate(_device())
    await wait_until(lambda: orchestrator.snapshot().stage.is_terminal)
    await asyncio.sleep(0.05)

    state = orchestrator.snapshot()
    assert state.stage is RunStage.FAILED
    assert not state.can_check_status
    assert not state.is_loading
    assert not orchestrator.polling_active
    assert generator.get_prediction.await_count == 1
    assert _poll_tasks() == []


@pytest.mark.asyncio
async def test_timer_retries_after_server_error(make_orchestrator, generator, wait_until) -> None:
    responses = iter(
        [
            ReplicateRequestError("Request failed (Status: 500)", status_code=500),
            Prediction(id="job-1", status="processing"),
        ]
    )

    async def get_prediction(prediction_id: str) -> Prediction:
        outcome = next(responses, None) or Prediction(id=prediction_id, status="processing")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    generator.get_prediction.side_effect = get_prediction
    orchestrator = make_orchestrator(poll_interval=0.01)

    await orchestrator.generate(_device())
    await wait_until(lambda: generator.get_prediction.await_count >= 3)

    state = orchestrator.snapshot()
    assert state.stage is RunStage.POLLING
    assert not state.is_error
    assert state.can_check_status
    assert state.job is not None and state.job.status == "processing"
    assert orchestrator.polling_active
