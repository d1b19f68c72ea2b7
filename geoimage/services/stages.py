"""Enumerations describing the stages of a generation run."""

from enum import Enum


class RunStage(str, Enum):
    """Linear states a single generation run moves through."""

    IDLE = "idle"
    ACQUIRING_LOCATION = "acquiring_location"
    RESOLVING_NAME = "resolving_name"
    FETCHING_WEATHER = "fetching_weather"
    COMPOSING_PROMPT = "composing_prompt"
    SUBMITTING_JOB = "submitting_job"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStage.SUCCEEDED, RunStage.FAILED)
