"""Model-agnostic completion routing utilities."""

from .base import BaseProvider
from .openai_provider import OpenAIProvider
from .openrouter import OPENROUTER_DEFAULT_BASE_URL, OpenRouterProvider
from .router import CompletionRouter
from .stub import StubProvider
from .types import CompletionError, LLMResponse

__all__ = [
    "BaseProvider",
    "CompletionError",
    "CompletionRouter",
    "LLMResponse",
    "OPENROUTER_DEFAULT_BASE_URL",
    "OpenAIProvider",
    "OpenRouterProvider",
    "StubProvider",
]
