"""Shared dependencies created once per application instance."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass

from geoimage.config.settings import Settings
from geoimage.geo.geocoder import NominatimGeocoder
from geoimage.imggen.composer import PromptComposer
from geoimage.imggen.prompt_builder import PromptBuilder
from geoimage.imggen.replicate_client import ReplicateClient
from geoimage.nlp.chatgpt_client import ChatGPTClient
from geoimage.services.orchestrator import Orchestrator
from geoimage.services.sessions import SessionRegistry
from geoimage.weather.metno_client import MetNoClient
from geoimage.weather.service import WeatherService


@dataclass(slots=True)
class AppContext:
    """Container for the clients and services shared across requests."""

    settings: Settings
    geocoder: NominatimGeocoder
    metno: MetNoClient
    chat: ChatGPTClient
    weather: WeatherService
    composer: PromptComposer
    replicate: ReplicateClient
    sessions: SessionRegistry

    def new_orchestrator(self) -> Orchestrator:
        return Orchestrator(
            geocoder=self.geocoder,
            weather=self.weather,
            composer=self.composer,
            generator=self.replicate,
            poll_interval=self.settings.poll_interval_seconds,
        )

    async def close(self) -> None:
        """Stop every session and release HTTP resources."""

        await self.sessions.close_all()
        for client in (self.geocoder, self.metno, self.chat, self.replicate):
            with contextlib.suppress(Exception):
                await client.close()


def build_context(settings: Settings) -> AppContext:
    """Wire the real collaborators for the given settings."""

    geocoder = NominatimGeocoder(settings)
    metno = MetNoClient(settings)
    chat = ChatGPTClient(settings)
    replicate = ReplicateClient(settings)
    context = AppContext(
        settings=settings,
        geocoder=geocoder,
        metno=metno,
        chat=chat,
        weather=WeatherService(metno, chat, geocoder),
        composer=PromptComposer(PromptBuilder(settings.sign_text), chat),
        replicate=replicate,
        sessions=SessionRegistry(lambda: context.new_orchestrator(), max_age=settings.session_max_age),
    )
    return context
