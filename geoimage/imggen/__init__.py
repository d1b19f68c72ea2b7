"""Prompt building and image generation utilities."""

from .composer import ComposedPrompt, PromptComposer, PromptEnhancementError
from .prompt_builder import PromptBuilder, PromptContext, PromptMeta
from .replicate_client import Prediction, ReplicateClient, ReplicateRequestError

__all__ = [
    "ComposedPrompt",
    "Prediction",
    "PromptBuilder",
    "PromptComposer",
    "PromptContext",
    "PromptEnhancementError",
    "PromptMeta",
    "ReplicateClient",
    "ReplicateRequestError",
]
