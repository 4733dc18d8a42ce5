"""
Base classes for STT (Speech-to-Text) provider abstraction.

Voice notes are transcribed through an ``STTProvider`` and the text is fed
into the same intake pipeline as a typed message.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class STTResponse:
    """
    Standardized response structure from STT providers.

    Attributes:
        text: The transcribed text
        language: Detected or specified language code
        provider: The provider name (e.g., 'openai', 'groq')
        model: The model used for transcription
        duration_seconds: Audio duration in seconds (if available)
        latency_ms: Request latency in milliseconds
        raw_response: The original response from the provider (for debugging)
    """
    text: str
    language: str | None = None
    provider: str = ""
    model: str = ""
    duration_seconds: float | None = None
    latency_ms: float = 0.0
    raw_response: dict[str, Any] | None = field(default=None, repr=False)


class STTProvider(ABC):
    """Abstract base class for all STT providers."""

    @abstractmethod
    async def transcribe(
        self,
        audio_bytes: bytes,
        language: str | None = None,
        prompt: str | None = None,
    ) -> STTResponse:
        """
        Transcribe audio to text.

        Args:
            audio_bytes: Raw audio data (WhatsApp voice notes are ogg/opus)
            language: Optional language hint (ISO 639-1 code, e.g., 'pt', 'en')
            prompt: Optional prompt to guide transcription

        Raises:
            STTProviderError: If the transcription fails
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """String identifier for the provider (e.g., 'openai', 'groq')."""


class STTProviderError(Exception):
    """Base exception for STT provider-related errors."""

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


class STTAuthenticationError(STTProviderError):
    """Raised when authentication fails (invalid API key)."""


class STTRateLimitError(STTProviderError):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, provider: str, retry_after: float | None = None):
        super().__init__(message, provider, status_code=429, retryable=True)
        self.retry_after = retry_after
