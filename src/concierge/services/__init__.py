"""Service layer orchestrations for the concierge."""

from .generation import GenerationBackend, GenerationConfig, OpenAIChatGenerator, TemplateGenerator
from .query import PromptBuilder, PromptBuilderConfig, QueryService

__all__ = [
    "GenerationBackend",
    "GenerationConfig",
    "OpenAIChatGenerator",
    "TemplateGenerator",
    "PromptBuilder",
    "PromptBuilderConfig",
    "QueryService",
]
