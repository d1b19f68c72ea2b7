"""Async wrapper around the Replicate predictions API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from geoimage.config.settings import Settings

logger = logging.getLogger(__name__)

NON_JSON_MESSAGE = "Server returned non-JSON response. Check logs for details."


class ReplicateRequestError(RuntimeError):
    """Raised when Replicate responds with an error or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class Prediction(BaseModel):
    """Validated subset of a Replicate prediction object."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    output: list[str] = []
    error: str | None = None

    @field_validator("output", mode="before")
    @classmethod
    def _normalise_output(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        if isinstance(value, list):
            return [str(item) for item in value if item]
        raise ValueError("output must be a URL or a list of URLs")

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return value if isinstance(value, str) else str(value)


def _error_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, Mapping):
        for key in ("detail", "error", "title"):
            value = payload.get(key)
            if value:
                return str(value)
    return f"Request failed (Status: {status_code})"


class ReplicateClient:
    """Submits image generation jobs and reads their status."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.replicate_base_url.rstrip("/"),
            timeout=settings.request_timeout,
            headers={
                "Authorization": f"Bearer {settings.replicate_api_token}",
                "User-Agent": settings.http_user_agent,
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""

        await self._client.aclose()

    async def _request_json(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Mapping[str, Any] | None = None,
    ) -> Any:
        if not self._settings.replicate_api_token:
            raise ReplicateRequestError("Replicate API token is not configured.")
        try:
            response = await self._client.request(method, endpoint, json=json_body)
        except httpx.TimeoutException as exc:
            raise ReplicateRequestError("Timed out waiting for Replicate.") from exc
        except httpx.HTTPError as exc:
            raise ReplicateRequestError(f"Replicate request failed: {exc}") from exc

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.error(
                "Non-JSON response from Replicate (%s): %s...",
                response.status_code,
                response.text[:150],
            )
            raise ReplicateRequestError(NON_JSON_MESSAGE, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ReplicateRequestError(
                "Server returned malformed JSON.",
                status_code=response.status_code,
            ) from exc

        if response.is_error:
            raise ReplicateRequestError(
                _error_message(payload, response.status_code),
                status_code=response.status_code,
            )
        return payload

    async def create_prediction(self, prompt: str) -> Prediction:
        """Start an image generation job for the prompt."""

        payload = await self._request_json(
            "POST",
            f"/models/{self._settings.replicate_model}/predictions",
            json_body={
                "input": {
                    "prompt": prompt,
                    "aspect_ratio": self._settings.replicate_aspect_ratio,
                    "output_format": "webp",
                },
            },
        )
        if isinstance(payload, Mapping) and payload.get("error"):
            raise ReplicateRequestError(str(payload["error"]))
        try:
            prediction = Prediction.model_validate(payload)
        except ValidationError as exc:
            raise ReplicateRequestError("Replicate API did not return a prediction ID.") from exc
        logger.info("Started prediction %s (status %s)", prediction.id, prediction.status)
        return prediction

    async def get_prediction(self, prediction_id: str) -> Prediction:
        """Return the current state of a job."""

        payload = await self._request_json("GET", f"/predictions/{prediction_id}")
        try:
            return Prediction.model_validate(payload)
        except ValidationError as exc:
            raise ReplicateRequestError("Replicate returned an unexpected prediction shape.") from exc

    async def ping(self) -> bool:
        """Return ``True`` when the account endpoint answers with the configured token."""

        payload = await self._request_json("GET", "/account")
        return bool(payload)
