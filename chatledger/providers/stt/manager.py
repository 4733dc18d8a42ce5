"""
STT Provider Manager.

Picks the Whisper-compatible provider named by ``STT_PROVIDER`` and routes
transcription requests to it.
"""

from typing import TYPE_CHECKING, Any

from loguru import logger

from .base import STTProvider, STTProviderError, STTResponse
from .openai_whisper import OpenAIWhisperProvider

if TYPE_CHECKING:
    from chatledger.core.config import Settings


class STTProviderManager:
    """
    Manager for STT provider selection and routing.

    Attributes:
        settings: Application settings
        provider: The active STT provider instance, if one could be built
    """

    def __init__(self, settings: "Settings"):
        self.settings = settings
        self._provider: STTProvider | None = None
        self._initialize_provider()

    def _initialize_provider(self) -> None:
        provider_name = self.settings.stt_provider.lower()
        api_key = self.settings.stt_api_key
        # reuse the LLM key when both run on the same vendor
        if not api_key and self.settings.ai_provider == provider_name:
            api_key = self.settings.ai_api_key

        if not api_key:
            logger.warning("STT provider disabled: no API key configured", provider=provider_name)
            return

        self._provider = OpenAIWhisperProvider(
            api_key=api_key,
            provider_name=provider_name,
            base_url=self.settings.stt_base_url,
            model=self.settings.stt_model,
            timeout=self.settings.stt_timeout,
        )
        logger.info("STT provider initialized", provider=provider_name, model=self._provider.model)

    @property
    def provider(self) -> STTProvider:
        if self._provider is None:
            raise STTProviderError(message="STT provider not initialized", provider="unknown")
        return self._provider

    @property
    def available(self) -> bool:
        return self._provider is not None

    async def transcribe(
        self,
        audio_bytes: bytes,
        language: str | None = None,
        prompt: str | None = None,
    ) -> STTResponse:
        """
        Transcribe audio using the configured STT provider.

        Raises:
            STTProviderError: If transcription fails
        """
        provider = self.provider
        logger.debug(
            "Transcribing audio",
            provider=provider.name,
            audio_size=len(audio_bytes),
            language=language,
        )
        try:
            result = await provider.transcribe(
                audio_bytes=audio_bytes,
                language=language or self.settings.stt_language,
                prompt=prompt,
            )
        except STTProviderError as e:
            logger.error("Transcription failed", provider=provider.name, error=str(e))
            raise

        logger.info(
            "Transcription completed",
            provider=result.provider,
            latency_ms=round(result.latency_ms, 2),
            text_length=len(result.text),
        )
        return result

    def get_provider_info(self) -> dict[str, Any]:
        if self._provider is None:
            return {"provider": None}
        return {"provider": self._provider.name, "model": getattr(self._provider, "model", None)}
