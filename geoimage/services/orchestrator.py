"""Generation pipeline: location, name, weather, prompt, job submission and polling."""

from __future__ import annotations

import dataclasses
import functools
import logging
from dataclasses import dataclass

from geoimage.geo.geocoder import GeocodingError, NominatimGeocoder
from geoimage.geo.location import GeolocationError, LocationSource
from geoimage.imggen.composer import PromptComposer
from geoimage.imggen.prompt_builder import PromptContext, PromptMeta
from geoimage.imggen.replicate_client import Prediction, ReplicateClient, ReplicateRequestError
from geoimage.metrics.prometheus_exporter import (
    generation_runs_total,
    job_submissions_total,
    poll_errors_total,
)
from geoimage.models import (
    UNKNOWN_LOCATION,
    Coordinate,
    GenerationJob,
    JobStatus,
    ResolvedLocation,
    SubjectCategory,
    WeatherSnapshot,
)
from geoimage.services.polling import PollingTimer
from geoimage.services.stages import RunStage
from geoimage.weather.metno_client import WeatherError
from geoimage.weather.service import WeatherService

logger = logging.getLogger(__name__)


_POST_SUBMISSION_STAGES = frozenset({RunStage.POLLING, RunStage.SUCCEEDED, RunStage.FAILED})


class _Superseded(Exception):
    """A newer run started while this one was awaiting a collaborator."""


class _RunAborted(Exception):
    """The run reached a fatal error and has already been marked failed."""


@dataclass(slots=True)
class OrchestrationState:
    """Everything the UI needs to render one session."""

    stage: RunStage = RunStage.IDLE
    subject: SubjectCategory = SubjectCategory.CUSTOM
    location: ResolvedLocation | None = None
    weather: WeatherSnapshot | None = None
    prompt: str = ""
    prompt_enhanced: bool = False
    prompt_meta: PromptMeta | None = None
    job: GenerationJob | None = None
    image_url: str | None = None
    status_message: str = ""
    is_error: bool = False
    is_loading: bool = False
    can_check_status: bool = False
    run_id: int = 0


class Orchestrator:
    """Owns one session's state and runs generation requests against it.

    Every await inside a run is followed by a check of the run id; results
    that arrive after a newer run has started are dropped. At most one
    :class:`PollingTimer` exists at any time.
    """

    def __init__(
        self,
        *,
        geocoder: NominatimGeocoder,
        weather: WeatherService,
        composer: PromptComposer,
        generator: ReplicateClient,
        poll_interval: float = 5.0,
    ) -> None:
        self._geocoder = geocoder
        self._weather = weather
        self._composer = composer
        self._generator = generator
        self._poll_interval = poll_interval
        self._state = OrchestrationState()
        self._timer: PollingTimer | None = None
        self._run_seq = 0

    @property
    def polling_active(self) -> bool:
        return self._timer is not None and self._timer.active

    @property
    def timer(self) -> PollingTimer | None:
        return self._timer

    def snapshot(self) -> OrchestrationState:
        """Return a copy of the current state."""

        job = self._state.job
        if job is not None:
            job = dataclasses.replace(job, output=list(job.output))
        return dataclasses.replace(self._state, job=job)

    # -- user actions -------------------------------------------------

    async def generate(
        self,
        location_source: LocationSource | None = None,
        *,
        subject: SubjectCategory | None = None,
    ) -> OrchestrationState:
        """Run the whole pipeline up to job submission; polling continues in the background."""

        if subject is not None:
            self._state.subject = subject
        run_id = self._begin_run()
        try:
            location = await self._acquire_location(run_id, location_source)
            location = await self._resolve_name(run_id, location)
            await self._fetch_weather(run_id, location)
            await self._compose_and_submit(run_id)
        except _Superseded:
            logger.info("Run %s superseded, discarding its results", run_id)
        except _RunAborted:
            pass
        return self.snapshot()

    async def reroll(self, location_source: LocationSource | None = None) -> OrchestrationState:
        """Compose and submit again with the already resolved location and weather."""

        if self._state.location is None or self._state.weather is None:
            return await self.generate(location_source)

        run_id = self._begin_run()
        try:
            await self._compose_and_submit(run_id)
        except _Superseded:
            logger.info("Reroll %s superseded, discarding its results", run_id)
        except _RunAborted:
            pass
        return self.snapshot()

    async def select_subject(self, subject: SubjectCategory) -> OrchestrationState:
        """Record the subject and recompose the prompt if location and weather are known."""

        self._state.subject = subject
        self._update_status(f"Selected subject type: {subject.value}")
        if self._state.location is not None and self._state.weather is not None:
            try:
                await self._build_prompt(self._run_seq)
            except _Superseded:
                logger.info("Prompt recomposition superseded by a newer run")
        return self.snapshot()

    async def set_manual_location(self, coordinate: Coordinate) -> OrchestrationState:
        """Store a map-picked position; later runs use it instead of device geolocation."""

        self._drop_pending_run()
        location = ResolvedLocation(coordinate=coordinate, is_manually_set=True)
        self._state.location = location
        self._state.weather = None
        self._update_status(f"Location set manually: {coordinate.label()}")
        try:
            info = await self._geocoder.reverse(coordinate.latitude, coordinate.longitude)
        except GeocodingError as exc:
            logger.warning("Could not determine manual location name: %s", exc)
            return self.snapshot()
        if self._state.location is location:
            self._state.location = location.with_place(info)
            self._update_status(f"Location set manually: {info.best_name}")
        return self.snapshot()

    def clear_manual_location(self) -> OrchestrationState:
        location = self._state.location
        if location is not None and location.is_manually_set:
            self._state.location = dataclasses.replace(location, is_manually_set=False)
            self._update_status("Using device location for the next run.")
        return self.snapshot()

    async def check_status(self) -> OrchestrationState:
        """Poll the live job once, outside the timer."""

        job = self._state.job
        if job is None:
            self._update_status("No active generation task ID found.", is_error=True)
            return self.snapshot()
        if not self._state.can_check_status or self._state.stage.is_terminal:
            return self.snapshot()
        self._update_status("Checking status...")
        await self._poll(self._run_seq, job.id)
        return self.snapshot()

    async def close(self) -> None:
        """Tear down: stop polling and make any in-flight response stale."""

        self._stop_polling()
        self._run_seq += 1
        self._state.is_loading = False

    # -- pipeline stages ----------------------------------------------

    def _drop_pending_run(self) -> None:
        """Supersede a run that has not submitted its job yet."""

        state = self._state
        if not state.is_loading or state.stage in _POST_SUBMISSION_STAGES:
            return
        logger.info("Run %s superseded by a location change", self._run_seq)
        self._run_seq += 1
        state.stage = RunStage.IDLE
        state.is_loading = False

    def _begin_run(self) -> int:
        self._stop_polling()
        self._run_seq += 1
        state = self._state
        state.run_id = self._run_seq
        state.stage = RunStage.IDLE
        state.job = None
        state.image_url = None
        state.prompt = ""
        state.prompt_enhanced = False
        state.prompt_meta = None
        state.is_error = False
        state.is_loading = True
        state.can_check_status = False
        return self._run_seq

    def _ensure_current(self, run_id: int) -> None:
        if run_id != self._run_seq:
            raise _Superseded()

    def _enter(self, run_id: int, stage: RunStage) -> None:
        self._ensure_current(run_id)
        self._state.stage = stage

    async def _acquire_location(
        self,
        run_id: int,
        location_source: LocationSource | None,
    ) -> ResolvedLocation:
        self._enter(run_id, RunStage.ACQUIRING_LOCATION)
        current = self._state.location
        if current is not None and current.is_manually_set:
            self._update_status(f"Using manually set location: {current.name or current.coordinate.label()}")
            return current

        self._update_status("Requesting location permission...")
        source = location_source or LocationSource()
        try:
            coordinate = await source.current_position()
        except GeolocationError as exc:
            self._ensure_current(run_id)
            self._fail(str(exc))
            raise _RunAborted() from exc
        self._ensure_current(run_id)

        location = ResolvedLocation(coordinate=coordinate)
        self._state.location = location
        self._state.weather = None
        self._update_status(f"Location acquired: {coordinate.label()}")
        return location

    async def _resolve_name(self, run_id: int, location: ResolvedLocation) -> ResolvedLocation:
        self._enter(run_id, RunStage.RESOLVING_NAME)
        if location.name:
            return location

        self._update_status("Determining location name...")
        coordinate = location.coordinate
        try:
            info = await self._geocoder.reverse(coordinate.latitude, coordinate.longitude)
        except GeocodingError as exc:
            self._ensure_current(run_id)
            logger.warning("Could not determine location name: %s", exc)
            return location
        self._ensure_current(run_id)

        resolved = location.with_place(info)
        self._state.location = resolved
        self._update_status(f"Location identified as: {resolved.name}")
        return resolved

    async def _fetch_weather(self, run_id: int, location: ResolvedLocation) -> WeatherSnapshot:
        self._enter(run_id, RunStage.FETCHING_WEATHER)
        self._update_status("Fetching weather data...")
        try:
            result = await self._weather.fetch(
                location.coordinate,
                location_name=location.name or UNKNOWN_LOCATION,
                country=location.country,
            )
        except WeatherError as exc:
            self._ensure_current(run_id)
            logger.warning("Weather fetch failed, substituting defaults: %s", exc)
            snapshot = WeatherSnapshot.unknown(location.name)
            self._state.weather = snapshot
            self._update_status("Could not fetch weather data, using default values.")
            return snapshot
        self._ensure_current(run_id)

        snapshot = result.snapshot
        self._state.weather = snapshot
        self._update_status(
            f"Weather for {snapshot.city}, {snapshot.country}: "
            f"{snapshot.temperature}°C, {snapshot.condition_text}",
        )
        return snapshot

    async def _build_prompt(self, run_id: int) -> str:
        location, weather = self._state.location, self._state.weather
        if location is None or weather is None:
            raise RuntimeError("Prompt composition requires a resolved location and weather.")

        self._update_status("Creating magic prompt...")
        context = PromptContext(location=location, weather=weather, subject=self._state.subject)
        composed = await self._composer.compose(context)
        self._ensure_current(run_id)

        self._state.prompt = composed.text
        self._state.prompt_enhanced = composed.enhanced
        self._state.prompt_meta = composed.meta
        if composed.enhanced:
            self._update_status("Magic prompt created!")
        else:
            self._update_status("Using standard prompt (enhancement failed)")
        return composed.text

    async def _compose_and_submit(self, run_id: int) -> None:
        self._enter(run_id, RunStage.COMPOSING_PROMPT)
        prompt = await self._build_prompt(run_id)
        await self._submit(run_id, prompt)

    async def _submit(self, run_id: int, prompt: str) -> None:
        self._enter(run_id, RunStage.SUBMITTING_JOB)
        self._update_status("Sending request to start image generation...")
        try:
            prediction = await self._generator.create_prediction(prompt)
        except ReplicateRequestError as exc:
            self._ensure_current(run_id)
            self._fail(f"Image generation error: {exc}")
            raise _RunAborted() from exc
        self._ensure_current(run_id)

        job_submissions_total.inc()
        self._state.job = GenerationJob(id=prediction.id, status=prediction.status)
        self._state.can_check_status = True
        self._state.stage = RunStage.POLLING
        self._update_status(f"Image generation started. Status: {prediction.status}")
        if self._state.job.is_terminal:
            self._handle_prediction(prediction)
            return
        self._start_polling(run_id, prediction.id)

    # -- polling ------------------------------------------------------

    def _start_polling(self, run_id: int, job_id: str) -> None:
        self._stop_polling()
        self._timer = PollingTimer(
            self._poll_interval,
            functools.partial(self._poll, run_id, job_id),
            name=f"poll:{job_id}",
        )
        self._timer.start()

    def _stop_polling(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_live(self, run_id: int, job_id: str) -> bool:
        job = self._state.job
        return run_id == self._run_seq and job is not None and job.id == job_id

    async def _poll(self, run_id: int, job_id: str) -> None:
        logger.debug("Polling status for %s", job_id)
        try:
            prediction = await self._generator.get_prediction(job_id)
        except ReplicateRequestError as exc:
            if not self._is_live(run_id, job_id):
                return
            message = f"Failed to fetch status: {exc}"
            if exc.is_client_error:
                poll_errors_total.labels(kind="permanent").inc()
                self._fail(f"{message} Stopping checks.")
                return
            poll_errors_total.labels(kind="transient").inc()
            self._update_status(message, is_error=True)
            return
        if not self._is_live(run_id, job_id) or self._state.stage.is_terminal:
            return
        self._handle_prediction(prediction)

    def _handle_prediction(self, prediction: Prediction) -> None:
        state = self._state
        job = state.job
        if job is None:
            return
        job.status = prediction.status
        job.output = list(prediction.output)
        job.error_reason = prediction.error
        self._update_status(f"Status: {prediction.status}")

        if prediction.status == JobStatus.SUCCEEDED:
            self._stop_polling()
            if not prediction.output:
                self._fail("Prediction succeeded but no output URL was found.")
                return
            job.result_url = prediction.output[0]
            state.image_url = job.result_url
            state.stage = RunStage.SUCCEEDED
            state.is_loading = False
            state.can_check_status = False
            generation_runs_total.labels(outcome="succeeded").inc()
            self._update_status("Image generation successful!")
        elif prediction.status in (JobStatus.FAILED, JobStatus.CANCELED):
            self._fail(f"Image generation {prediction.status}. Reason: {prediction.error or 'Unknown'}")
        elif prediction.status in (JobStatus.PROCESSING, JobStatus.STARTING):
            state.can_check_status = True
        else:
            logger.warning("Unexpected prediction status: %s", prediction.status)
            state.can_check_status = True
            self._update_status(f"Unexpected prediction status: {prediction.status}")

    # -- status -------------------------------------------------------

    def _fail(self, message: str) -> None:
        self._stop_polling()
        state = self._state
        state.stage = RunStage.FAILED
        state.is_loading = False
        state.can_check_status = False
        generation_runs_total.labels(outcome="failed").inc()
        self._update_status(message, is_error=True)

    def _update_status(self, message: str, is_error: bool = False) -> None:
        if is_error:
            logger.error(message)
        else:
            logger.info(message)
        self._state.status_message = message
        self._state.is_error = is_error
