"""Prompt construction helpers for the image generation step."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from geoimage.models import (
    UNKNOWN_COUNTRY,
    UNKNOWN_LOCATION,
    ResolvedLocation,
    SubjectCategory,
    Temperature,
    WeatherSnapshot,
)

SUBJECT_DESCRIPTIONS: dict[SubjectCategory, str] = {
    SubjectCategory.PORTRAIT: (
        "A striking portrait of a local person with authentic facial expressions and natural "
        "lighting. The face is captured with striking detail, showing the character and "
        "personality in their eyes."
    ),
    SubjectCategory.HUMANS: (
        "People actively engaging with their surroundings, showing authentic emotions and "
        "interactions. Small groups of locals going about their daily activities, creating a "
        "sense of community and place."
    ),
    SubjectCategory.NATURE: (
        "The natural landscape dominates the scene, showcasing the environmental features, "
        "flora, and fauna characteristic of the region. No human presence, focusing entirely "
        "on the raw beauty of nature."
    ),
    SubjectCategory.CUSTOM: (
        "People are actively engaging with their mobile phones - taking selfies, texting, or "
        "showing each other content on their screens."
    ),
}

SUBJECT_SCENES: dict[SubjectCategory, str] = {
    SubjectCategory.PORTRAIT: "a portrait of a local person",
    SubjectCategory.HUMANS: "people engaged in activities",
    SubjectCategory.NATURE: "a natural landscape scene",
    SubjectCategory.CUSTOM: "people engaging with their mobile phones",
}

CAMERA_STYLE = "\n".join(
    [
        "Style: Shot on Fujifilm GFX 50S medium format camera with GF 120mm F4 R LM OIS WR Macro lens.",
        "Fujifilm's signature color science with natural skin tone reproduction. Medium format sensor "
        "rendering with exceptional detail and subtle tonal gradations.",
        "Technical settings: f/14 for deep focus across frame, 1/500 sec shutter speed for crisp detail, "
        "ISO 640 maintaining clean image quality with medium format noise characteristics.",
        "Fujifilm's characteristic color rendition emphasizing warm tones while maintaining highlight "
        "detail. 4:3 medium format aspect ratio.",
        "Gentle falloff in corners typical of GF lens lineup. Sharp detail retention with medium format depth.",
        "Subtle micro-contrast typical of GFX system. The text on signs must be perfectly legible and clear.",
    ]
)

PROMPT_ENGINEER_PROMPT = (
    "You are a photography expert and prompt engineer who creates detailed, vivid descriptions "
    "for image generation."
)


def time_of_day(hour: int) -> str:
    """Bucket an hour of the day into a photographic time of day."""

    if 5 <= hour < 8:
        return "Early morning"
    if 8 <= hour < 12:
        return "Morning"
    if 12 <= hour < 14:
        return "Midday"
    if 14 <= hour < 17:
        return "Afternoon"
    if 17 <= hour < 20:
        return "Evening"
    if 20 <= hour < 23:
        return "Night"
    return "Late night"


_LIGHTING: dict[str, tuple[str, str]] = {
    # (clear, cloudy)
    "Early morning": ("warm golden sunrise light", "diffused dawn light through clouds"),
    "Morning": ("bright morning sunlight with long shadows", "soft diffused morning light"),
    "Midday": ("harsh direct overhead sunlight", "even, diffused daylight"),
    "Afternoon": ("warm directional sunlight", "soft even light through cloud cover"),
    "Evening": ("golden hour light with warm tones", "muted twilight ambience"),
    "Night": ("clear night with moonlight and city lights", "ambient urban light reflecting off cloud cover"),
    "Late night": ("dark setting with subtle artificial lighting", "minimal ambient light with cloud cover"),
}


def lighting_description(period: str, cloud_cover: float | None) -> str:
    """Describe the light for a time of day; more than half cloud cover counts as cloudy."""

    options = _LIGHTING.get(period)
    if options is None:
        return "natural lighting"
    clear, cloudy = options
    return cloudy if (cloud_cover or 0) > 50 else clear


def clothing_hint(temperature: Temperature) -> str:
    if not isinstance(temperature, (int, float)):
        return "clothing suited to the local season"
    if temperature > 25:
        return "light summer clothes, perhaps with sunglasses and sun protection"
    if temperature > 15:
        return "comfortable light layers suited for mild conditions"
    if temperature > 5:
        return "jackets and light cold-weather gear"
    return "heavy winter clothing, scarves, gloves, etc."


@dataclass(frozen=True, slots=True)
class PromptMeta:
    """Context the enrichment step derived; returned alongside the prompt."""

    time_of_day: str
    lighting_conditions: str
    location: str
    country: str
    subject: SubjectCategory


@dataclass(frozen=True, slots=True)
class PromptContext:
    """Everything a prompt is composed from."""

    location: ResolvedLocation
    weather: WeatherSnapshot
    subject: SubjectCategory = SubjectCategory.CUSTOM

    @property
    def place_name(self) -> str | None:
        if self.location.name and self.location.name != UNKNOWN_LOCATION:
            return self.location.name
        if self.weather.city and self.weather.city != UNKNOWN_LOCATION:
            return self.weather.city
        return None

    @property
    def country(self) -> str | None:
        if self.location.country:
            return self.location.country
        if self.weather.country and self.weather.country != UNKNOWN_COUNTRY:
            return self.weather.country
        return None


class PromptBuilder:
    """Builds the deterministic fallback prompt and the enrichment request."""

    def __init__(self, sign_text: str = "Dentsu") -> None:
        self._sign_text = sign_text

    def build_fallback(self, context: PromptContext) -> str:
        """Return the template prompt used whenever enrichment is unavailable."""

        place = context.place_name
        coordinate = context.location.coordinate
        opening = (
            f"Lifestyle magazine cover photo of an outdoor scene in "
            f"{place or 'a beautiful location'}, {context.country or 'unknown country'}."
        )
        if context.weather.narrative_text:
            opening = f"{opening} {context.weather.narrative_text}"
        return "\n".join(
            [
                opening,
                SUBJECT_DESCRIPTIONS[context.subject],
                f'Street signs or direction signs that say "{self._sign_text}" and '
                f'"{(place or "LOCATION").upper()}" in bold, easy-to-read font.',
                "",
                f"GPS coordinates: {coordinate.label()}.",
                CAMERA_STYLE,
            ]
        )

    def build_enhancement_messages(
        self,
        context: PromptContext,
        *,
        now: datetime | None = None,
    ) -> tuple[list[dict[str, str]], PromptMeta]:
        """Return chat messages asking the model for a scene description, plus the derived meta."""

        moment = now or datetime.now()
        period = time_of_day(moment.hour)
        weather = context.weather
        lighting = lighting_description(period, weather.cloud_cover_pct)
        place = context.place_name or UNKNOWN_LOCATION
        country = context.country or UNKNOWN_COUNTRY
        coordinate = context.location.coordinate

        cloud_cover = "unknown" if weather.cloud_cover_pct is None else weather.cloud_cover_pct
        wind_speed = "light" if weather.wind_speed is None else weather.wind_speed
        request = "\n".join(
            [
                f"Create a detailed photography prompt for an image taken in {place}, {country} "
                f"during {period.lower()} with {lighting}.",
                "",
                "Current weather conditions:",
                f"- Temperature: {weather.temperature}°C",
                f"- Weather description: {weather.condition_text}",
                f"- Cloud cover: {cloud_cover}%",
                f"- Wind speed: {wind_speed} m/s",
                "",
                f"The image should feature {SUBJECT_SCENES[context.subject]} that reflects:",
                f"1. The local environment and {period.lower()} lighting conditions ({lighting})",
                f"2. Weather-appropriate clothing and activities (e.g., {clothing_hint(weather.temperature)})",
                f"3. Cultural elements specific to {country}",
                f"4. Authentic details that would be found in {place}",
                "",
                f'Include "{self._sign_text}" and "{place.upper()}" text visible on signs or in the '
                "environment - these must be clearly readable.",
                "",
                f"GPS coordinates: {coordinate.label()}",
                "",
                "The prompt should be detailed and vivid, focusing on the scene, environment, lighting, "
                "and people's appearance/activities if applicable. DO NOT include any technical camera "
                "settings in your prompt.",
            ]
        )
        messages = [
            {"role": "system", "content": PROMPT_ENGINEER_PROMPT},
            {"role": "user", "content": request},
        ]
        meta = PromptMeta(
            time_of_day=period,
            lighting_conditions=lighting,
            location=place,
            country=country,
            subject=context.subject,
        )
        return messages, meta

    @staticmethod
    def finalize(description: str) -> str:
        """Append the fixed camera style to a model-written scene description."""

        return f"{description.strip()}\n\n{CAMERA_STYLE}"
