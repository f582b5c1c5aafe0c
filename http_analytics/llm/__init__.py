"""Clients for hosted text-generation services."""

from .generators import (
    AnthropicGenerator,
    CohereGenerator,
    GeminiGenerator,
    GenerationError,
    OpenAICompatibleGenerator,
    TextGenerator,
    build_generator,
)

__all__ = [
    "AnthropicGenerator",
    "CohereGenerator",
    "GeminiGenerator",
    "GenerationError",
    "OpenAICompatibleGenerator",
    "TextGenerator",
    "build_generator",
]
