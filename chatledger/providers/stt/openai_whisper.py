"""
Whisper API STT Provider implementation.

OpenAI and Groq expose the same /v1/audio/transcriptions contract, so one
provider class serves both; only the base URL and default model differ.
"""

import time

import httpx
from loguru import logger

from .base import (
    STTAuthenticationError,
    STTProvider,
    STTProviderError,
    STTRateLimitError,
    STTResponse,
)

WHISPER_DEFAULTS: dict[str, tuple[str, str]] = {
    "openai": ("https://api.openai.com", "whisper-1"),
    "groq": ("https://api.groq.com/openai", "whisper-large-v3"),
}


class OpenAIWhisperProvider(STTProvider):
    """
    STT Provider for Whisper-compatible transcription APIs.

    Attributes:
        provider_name: 'openai' or 'groq'
        api_key: API key for Bearer authentication
        base_url: API base URL
        model: Whisper model to use
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        provider_name: str = "openai",
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
    ):
        self.provider_name = provider_name.lower()
        if not api_key or not api_key.strip():
            raise STTAuthenticationError(
                message=f"API key is required for {self.provider_name} Whisper provider",
                provider=self.provider_name,
            )

        default_url, default_model = WHISPER_DEFAULTS.get(self.provider_name, WHISPER_DEFAULTS["openai"])
        self.api_key = api_key.strip()
        self.base_url = (base_url or default_url).rstrip("/")
        self.model = model or default_model
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.provider_name

    def _get_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _get_endpoint(self) -> str:
        return f"{self.base_url}/v1/audio/transcriptions"

    async def transcribe(
        self,
        audio_bytes: bytes,
        language: str | None = None,
        prompt: str | None = None,
    ) -> STTResponse:
        """
        Transcribe a voice note.

        Raises:
            STTAuthenticationError: If authentication fails
            STTRateLimitError: If rate limit is exceeded
            STTProviderError: For other API errors
        """
        start_time = time.perf_counter()

        files = {"file": ("audio.ogg", audio_bytes, "audio/ogg")}
        data: dict[str, str] = {
            "model": self.model,
            "response_format": "verbose_json",
        }
        if language:
            data["language"] = language
        if prompt:
            data["prompt"] = prompt

        logger.debug(
            "Sending request to Whisper API",
            provider=self.provider_name,
            model=self.model,
            audio_size=len(audio_bytes),
            language=language,
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self._get_endpoint(),
                    headers=self._get_headers(),
                    files=files,
                    data=data,
                )

                if response.status_code == 401:
                    raise STTAuthenticationError(
                        message="Authentication failed: Invalid API key",
                        provider=self.name,
                        status_code=401,
                    )
                elif response.status_code == 429:
                    retry_after = response.headers.get("retry-after")
                    raise STTRateLimitError(
                        message=f"Rate limit exceeded for {self.provider_name} Whisper",
                        provider=self.name,
                        retry_after=float(retry_after) if retry_after else None,
                    )

                response.raise_for_status()
                result = response.json()

        except httpx.TimeoutException as e:
            raise STTProviderError(
                message=f"Whisper request timed out after {self.timeout}s",
                provider=self.name,
                retryable=True,
            ) from e
        except httpx.ConnectError as e:
            raise STTProviderError(
                message=f"Failed to connect to {self.base_url}",
                provider=self.name,
                retryable=True,
            ) from e
        except httpx.HTTPStatusError as e:
            raise STTProviderError(
                message=f"Whisper returned error: {e.response.status_code}",
                provider=self.name,
                status_code=e.response.status_code,
                retryable=e.response.status_code >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise STTProviderError(
                message=f"Whisper transport error: {e}",
                provider=self.name,
                retryable=True,
            ) from e
        except ValueError as e:
            raise STTProviderError(
                message="Whisper returned a non-JSON body",
                provider=self.name,
                retryable=True,
            ) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        text = (result.get("text") or "").strip()

        logger.debug(
            "Whisper transcription completed",
            provider=self.provider_name,
            latency_ms=round(latency_ms, 2),
            text_length=len(text),
            language=result.get("language"),
        )

        return STTResponse(
            text=text,
            language=result.get("language"),
            provider=self.name,
            model=self.model,
            duration_seconds=result.get("duration"),
            latency_ms=latency_ms,
            raw_response=result,
        )
