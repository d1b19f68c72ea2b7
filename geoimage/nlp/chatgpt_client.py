"""Client for text generation via the configured OpenAI-compatible provider."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError

from geoimage.config.settings import Settings
from geoimage.weather.metno_client import WeatherReport

logger = logging.getLogger(__name__)

WEATHER_WRITER_PROMPT = (
    "You are a creative travel writer providing vivid, evocative descriptions of weather and "
    "locations for a photographer. Keep descriptions concise (50-60 words) but vivid. Focus on "
    "sensory details, lighting conditions, and atmospheric qualities that would impact "
    "photography. Include references to how the weather affects the location's appearance and mood."
)


class ChatCompletionError(RuntimeError):
    """Raised when the chat model call fails or returns nothing usable."""


class ChatGPTClient:
    """Thin client around chat completions used for captions and prompt enrichment."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: AsyncOpenAI | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        if self._client is None and settings.openai_api_key:
            # each call is a single attempt; callers own the fallback
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url.rstrip("/"),
                max_retries=settings.openai_max_retries,
                timeout=settings.request_timeout,
                http_client=httpx.AsyncClient(transport=transport) if transport is not None else None,
            )

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        """Return the stripped text of the first choice."""

        if self._client is None:
            raise ChatCompletionError("OpenAI API key is not configured.")
        try:
            response = await self._client.chat.completions.create(
                model=self._settings.openai_chat_model,
                messages=list(messages),  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            raise ChatCompletionError(f"Chat completion failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ChatCompletionError("Chat model returned an empty response.")
        return content.strip()

    async def describe_weather(self, location_name: str, report: WeatherReport) -> str:
        """Write a short photographic caption for the current conditions."""

        user_content = (
            f"Create a vivid, short description (50-60 words) of the current weather in {location_name}. "
            f"Temperature: {report.temperature}°C, Wind: {report.wind_speed} m/s, "
            f"Cloud cover: {report.cloud_cover}%, Precipitation: {report.precipitation} mm, "
            f"Weather symbol: {report.symbol_text}. Focus on how this weather creates specific "
            "lighting conditions, atmospheric effects, and visual elements that would impact photography."
        )
        return await self.complete(
            [
                {"role": "system", "content": WEATHER_WRITER_PROMPT},
                {"role": "user", "content": user_content},
            ],
            temperature=0.7,
            max_tokens=150,
        )

    async def ping(self) -> bool:
        """Return ``True`` if the upstream service responds to a model listing call."""

        if self._client is None:
            raise ChatCompletionError("OpenAI API key is not configured.")
        models = await self._client.models.list()
        return bool(models.data)

    async def close(self) -> None:
        """Release HTTP resources."""

        if self._client is not None:
            await self._client.close()
