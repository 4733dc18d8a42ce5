"""
AI Provider abstraction layer.

A unified interface over Ollama and the OpenAI-compatible chat APIs, used by
the intent classifier and the transaction extractor.
"""

from .base import (
    AIProvider,
    AIResponse,
    AuthenticationError,
    InvalidResponseError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
)
from .manager import AIProviderManager
from .ollama import OllamaProvider
from .openai_compatible import OpenAICompatibleProvider

__all__ = [
    "AIProvider",
    "AIProviderManager",
    "AIResponse",
    "AuthenticationError",
    "InvalidResponseError",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "ProviderError",
    "QuotaExceededError",
    "RateLimitError",
]
