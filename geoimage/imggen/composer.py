"""Composes the final image prompt, enriching the template when the chat model allows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from geoimage.imggen.prompt_builder import PromptBuilder, PromptContext, PromptMeta
from geoimage.nlp.chatgpt_client import ChatCompletionError, ChatGPTClient

logger = logging.getLogger(__name__)


class PromptEnhancementError(RuntimeError):
    """Raised when the enrichment call cannot produce a prompt."""


@dataclass(frozen=True, slots=True)
class ComposedPrompt:
    """Final prompt plus whether it came from the chat model."""

    text: str
    fallback: str
    enhanced: bool
    meta: PromptMeta | None = None


class PromptComposer:
    """Combines location, weather and subject into an image generation prompt."""

    def __init__(self, builder: PromptBuilder, chat: ChatGPTClient) -> None:
        self._builder = builder
        self._chat = chat

    @property
    def builder(self) -> PromptBuilder:
        return self._builder

    async def enhance(
        self,
        context: PromptContext,
        *,
        now: datetime | None = None,
    ) -> tuple[str, PromptMeta]:
        """Ask the chat model for a scene description and append the camera style."""

        messages, meta = self._builder.build_enhancement_messages(context, now=now)
        try:
            description = await self._chat.complete(messages, temperature=0.8, max_tokens=500)
        except ChatCompletionError as exc:
            raise PromptEnhancementError("Failed to generate enhanced prompt") from exc
        return self._builder.finalize(description), meta

    async def compose(self, context: PromptContext) -> ComposedPrompt:
        """Return a usable prompt; falls back to the template verbatim on any enrichment failure."""

        fallback = self._builder.build_fallback(context)
        try:
            text, meta = await self.enhance(context)
        except PromptEnhancementError as exc:
            logger.warning("Using standard prompt, enhancement failed: %s", exc.__cause__ or exc)
            return ComposedPrompt(text=fallback, fallback=fallback, enhanced=False)
        return ComposedPrompt(text=text, fallback=fallback, enhanced=True, meta=meta)
