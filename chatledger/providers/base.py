"""
Base classes for the LLM provider abstraction.

The intent classifier and the extractor only ever talk to an ``AIProvider``
through ``AIProviderManager``; these types are the contract between them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class AIResponse:
    """
    Standardized response structure from AI providers.

    Attributes:
        content: The text content returned by the model
        model: The model identifier used for the request
        provider: The provider name (e.g., 'ollama', 'openai')
        usage: Token usage statistics (input_tokens, output_tokens)
        latency_ms: Request latency in milliseconds
        raw_response: The original response from the provider (for debugging)
    """
    content: str
    model: str
    provider: str
    usage: dict[str, int] | None = None
    latency_ms: float = 0.0
    raw_response: dict[str, Any] | None = field(default=None, repr=False)


class AIProvider(ABC):
    """Abstract base class for all AI providers."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        """
        Send a chat completion request to the AI provider.

        Args:
            messages: List of message dicts with 'role' and 'content' keys
            model: Optional model override (uses default if not specified)
            temperature: Sampling temperature (0.0 to 1.0)
            max_tokens: Maximum tokens in the response

        Returns:
            AIResponse with the model's response and metadata

        Raises:
            ProviderError: If the request fails
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """String identifier for the provider (e.g., 'ollama', 'openai')."""


class ProviderError(Exception):
    """Base exception for provider-related errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class AuthenticationError(ProviderError):
    """Raised when authentication fails (invalid API key, expired token)."""


class RateLimitError(ProviderError):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, provider: str, retry_after: float | None = None):
        super().__init__(message, provider, status_code=429, retryable=True)
        self.retry_after = retry_after


class QuotaExceededError(ProviderError):
    """Raised when quota/credits are exhausted."""


class InvalidResponseError(ProviderError):
    """Raised when the model answered but not with the JSON object we asked for."""
