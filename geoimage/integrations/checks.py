"""Reachability checks for every upstream the generation pipeline depends on."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from geoimage.config.settings import Settings, get_settings
from geoimage.geo.geocoder import NominatimGeocoder
from geoimage.imggen.replicate_client import ReplicateClient
from geoimage.models import UNKNOWN_LOCATION
from geoimage.nlp.chatgpt_client import ChatGPTClient
from geoimage.weather.metno_client import MetNoClient

# Oslo city centre: always resolvable and always covered by MET Norway.
REFERENCE_POINT = (59.9139, 10.7522)


class _Closable(Protocol):
    async def close(self) -> None: ...


@dataclass(slots=True)
class IntegrationCheckResult:
    """Outcome of one upstream check."""

    name: str
    success: bool
    message: str
    latency_ms: float | None = None


async def _run_check(
    name: str,
    client: _Closable,
    attempt: Callable[[], Awaitable[str | None]],
) -> IntegrationCheckResult:
    """Run ``attempt`` and close ``client``; a ``None`` detail counts as a failed check."""

    started = time.perf_counter()
    try:
        detail = await attempt()
    except Exception as exc:  # noqa: BLE001
        return IntegrationCheckResult(name=name, success=False, message=str(exc) or type(exc).__name__)
    finally:
        await client.close()
    elapsed = round((time.perf_counter() - started) * 1000, 1)

    if detail is None:
        return IntegrationCheckResult(
            name=name,
            success=False,
            message="Service responded with non-success status.",
            latency_ms=elapsed,
        )
    return IntegrationCheckResult(name=name, success=True, message=detail, latency_ms=elapsed)


async def check_openai_chat(settings: Settings | None = None) -> IntegrationCheckResult:
    """List models on the chat provider used for captions and prompt enrichment."""

    settings = settings or get_settings()
    client = ChatGPTClient(settings)

    async def _attempt() -> str | None:
        if not await client.ping():
            return None
        return f"Chat completions reachable (model {settings.openai_chat_model})."

    return await _run_check("OpenAI", client, _attempt)


async def check_replicate(settings: Settings | None = None) -> IntegrationCheckResult:
    """Read the account behind ``REPLICATE_API_TOKEN``."""

    settings = settings or get_settings()
    client = ReplicateClient(settings)

    async def _attempt() -> str | None:
        if not await client.ping():
            return None
        return f"Replicate reachable (model {settings.replicate_model})."

    return await _run_check("Replicate", client, _attempt)


async def check_nominatim(settings: Settings | None = None) -> IntegrationCheckResult:
    """Reverse-geocode the reference point."""

    client = NominatimGeocoder(settings or get_settings())

    async def _attempt() -> str | None:
        info = await client.reverse(*REFERENCE_POINT)
        if info.best_name == UNKNOWN_LOCATION:
            return None
        return f"Reference point resolved to {info.best_name}."

    return await _run_check("Nominatim", client, _attempt)


async def check_metno(settings: Settings | None = None) -> IntegrationCheckResult:
    """Fetch current conditions at the reference point."""

    client = MetNoClient(settings or get_settings())

    async def _attempt() -> str | None:
        report = await client.current(*REFERENCE_POINT)
        return f"Current conditions: {report.temperature}°C, {report.symbol_text}."

    return await _run_check("MET Norway", client, _attempt)


async def run_all_checks(settings: Settings | None = None) -> list[IntegrationCheckResult]:
    """Execute all integration checks concurrently."""

    settings = settings or get_settings()
    return list(
        await asyncio.gather(
            check_nominatim(settings),
            check_metno(settings),
            check_openai_chat(settings),
            check_replicate(settings),
        )
    )
