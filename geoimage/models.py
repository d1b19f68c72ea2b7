"""Domain objects shared by the collaborators and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

UNKNOWN_LOCATION = "Unknown location"
UNKNOWN_COUNTRY = "Unknown country"
UNKNOWN_CONDITIONS = "unknown conditions"

Temperature = Union[float, Literal["unknown"]]


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Device or map position in decimal degrees."""

    latitude: float
    longitude: float
    altitude: float | None = None

    def label(self) -> str:
        return f"{self.latitude:.4f}, {self.longitude:.4f}"


@dataclass(frozen=True, slots=True)
class ResolvedLocation:
    """Coordinate enriched with a display name.

    ``is_manually_set`` records where the coordinate came from (a map drag rather
    than device geolocation). It decides whether the next run asks the device again.
    """

    coordinate: Coordinate
    name: str | None = None
    country: str | None = None
    is_manually_set: bool = False

    def with_place(self, info: LocationInfo) -> ResolvedLocation:
        return ResolvedLocation(
            coordinate=self.coordinate,
            name=info.best_name,
            country=info.country,
            is_manually_set=self.is_manually_set,
        )


@dataclass(frozen=True, slots=True)
class LocationInfo:
    """Reverse geocoding result."""

    best_name: str = UNKNOWN_LOCATION
    city: str | None = None
    county: str | None = None
    state: str | None = None
    country: str | None = None
    country_code: str | None = None
    postcode: str | None = None
    display_name: str | None = None


@dataclass(frozen=True, slots=True)
class WeatherSnapshot:
    """Current conditions used for prompt composition."""

    temperature: Temperature
    condition_text: str
    city: str = UNKNOWN_LOCATION
    country: str = UNKNOWN_COUNTRY
    symbol: str | None = None
    cloud_cover_pct: float | None = None
    wind_speed: float | None = None
    precipitation: float | None = None
    narrative_text: str | None = None

    @classmethod
    def unknown(cls, city: str | None = None) -> WeatherSnapshot:
        """Sentinel substituted whenever the weather upstream fails."""

        return cls(
            temperature="unknown",
            condition_text=UNKNOWN_CONDITIONS,
            city=city or UNKNOWN_LOCATION,
            country=UNKNOWN_COUNTRY,
        )

    @property
    def is_unknown(self) -> bool:
        return self.temperature == "unknown"


class SubjectCategory(str, Enum):
    """What the generated photo should focus on."""

    PORTRAIT = "portrait"
    HUMANS = "humans"
    NATURE = "nature"
    CUSTOM = "custom"


class JobStatus(str, Enum):
    """Prediction states reported by the image generation backend."""

    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED})


@dataclass(slots=True)
class GenerationJob:
    """Asynchronous image generation task tracked by its id.

    ``status`` stays a raw string so values outside :class:`JobStatus` survive
    long enough to be reported.
    """

    id: str
    status: str = JobStatus.STARTING.value
    result_url: str | None = None
    error_reason: str | None = None
    output: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in {status.value for status in TERMINAL_JOB_STATUSES}
