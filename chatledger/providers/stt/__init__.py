"""
Speech-to-Text (STT) providers for WhatsApp voice notes.

Usage:
    from chatledger.providers.stt import STTProviderManager

    manager = STTProviderManager(settings)
    result = await manager.transcribe(audio_bytes)
"""

from .base import STTProvider, STTProviderError, STTResponse
from .manager import STTProviderManager
from .openai_whisper import OpenAIWhisperProvider

__all__ = [
    "OpenAIWhisperProvider",
    "STTProvider",
    "STTProviderError",
    "STTProviderManager",
    "STTResponse",
]
