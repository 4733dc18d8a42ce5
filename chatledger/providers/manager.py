"""
AI Provider Manager implementation.

Builds the configured primary/fallback providers, routes requests with
automatic fallback, logs requests and responses (redacted in debug mode) and
turns completions into the JSON objects the intake prompts ask for.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from chatledger.core.config import Settings
from .base import (
    AIProvider,
    AIResponse,
    AuthenticationError,
    InvalidResponseError,
    ProviderError,
)
from .ollama import OllamaProvider
from .openai_compatible import OpenAICompatibleProvider


# Provider names that use OpenAI-compatible API
OPENAI_COMPATIBLE_PROVIDERS = {
    "openai",
    "groq",
    "together",
    "deepseek",
    "qwen",
    "kimi",
    "moonshot",
}

# Patterns for redacting sensitive data in logs
SENSITIVE_PATTERNS = [
    (re.compile(r'(api[_-]?key|apikey|authorization|bearer|token|secret|password|credential)["\']?\s*[:=]\s*["\']?([^"\'\s,}\]]+)', re.IGNORECASE), r'\1: [REDACTED]'),
    (re.compile(r'(sk-[a-zA-Z0-9]{20,})', re.IGNORECASE), '[REDACTED_API_KEY]'),
    (re.compile(r'(Bearer\s+)[^\s"\']+', re.IGNORECASE), r'\1[REDACTED]'),
]

_SENSITIVE_KEYS = ("api_key", "apikey", "secret", "password", "token", "authorization", "credential")

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def redact_sensitive_data(data: Any) -> Any:
    """Redact sensitive information from dicts, lists or strings for safe logging."""
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if any(sensitive in str(key).lower() for sensitive in _SENSITIVE_KEYS):
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = redact_sensitive_data(value)
        return redacted
    if isinstance(data, list):
        return [redact_sensitive_data(item) for item in data]
    if isinstance(data, str):
        result = data
        for pattern, replacement in SENSITIVE_PATTERNS:
            result = pattern.sub(replacement, result)
        return result
    return data


def extract_json_payload(content: str, provider: str = "manager") -> dict[str, Any]:
    """First JSON object embedded in a completion."""
    match = _JSON_OBJECT.search(content or "")
    if not match:
        raise InvalidResponseError(message="JSON payload not found in completion", provider=provider)
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InvalidResponseError(message=f"Malformed JSON in completion: {e}", provider=provider) from e
    if not isinstance(payload, dict):
        raise InvalidResponseError(message="Completion JSON is not an object", provider=provider)
    return payload


class AIProviderManager:
    """
    Manages AI provider selection and fallback.

    Attributes:
        primary_provider: The main AI provider for requests
        fallback_provider: Optional backup provider for failures
        config: The application settings
    """

    def __init__(self, config: Settings):
        self.config = config
        self._primary_provider: AIProvider | None = None
        self._fallback_provider: AIProvider | None = None
        self._debug_logging = config.ai_debug_logging
        if config.ai_enabled:
            self._init_providers()

    def _log_request(self, provider: str, model: str | None, messages: list[dict[str, str]]) -> datetime:
        timestamp = datetime.now(timezone.utc)
        logger.info(
            "AI request started",
            provider=provider,
            model=model,
            message_count=len(messages),
        )
        if self._debug_logging:
            logger.debug("AI request payload", provider=provider, messages=redact_sensitive_data(messages))
        return timestamp

    def _log_response(self, response: AIResponse, request_timestamp: datetime) -> None:
        elapsed_ms = (datetime.now(timezone.utc) - request_timestamp).total_seconds() * 1000
        log_data: dict[str, Any] = {
            "provider": response.provider,
            "model": response.model,
            "response_time_ms": round(elapsed_ms, 2),
            "latency_ms": round(response.latency_ms, 2),
        }
        if response.usage:
            log_data["input_tokens"] = response.usage.get("input_tokens", 0)
            log_data["output_tokens"] = response.usage.get("output_tokens", 0)
        logger.info("AI response received", **log_data)

        if self._debug_logging:
            content = response.content
            logger.debug(
                "AI response payload",
                provider=response.provider,
                content=redact_sensitive_data(content[:500] + "..." if len(content) > 500 else content),
            )

    @staticmethod
    def _log_error(provider: str, error: Exception, request_timestamp: datetime) -> None:
        elapsed_ms = (datetime.now(timezone.utc) - request_timestamp).total_seconds() * 1000
        logger.error(
            "AI request failed",
            provider=provider,
            error_type=type(error).__name__,
            error_message=str(error),
            elapsed_ms=round(elapsed_ms, 2),
        )

    def _init_providers(self) -> None:
        try:
            self._primary_provider = self._create_provider(
                provider_name=self.config.ai_provider,
                api_key=self.config.ai_api_key,
                base_url=self.config.ai_base_url,
                model=self.config.ai_model,
                timeout=self.config.ai_timeout,
            )
            logger.info("Primary AI provider initialized", provider=self.config.ai_provider)
        except (AuthenticationError, ValueError) as e:
            logger.error(
                "Failed to initialize primary provider",
                provider=self.config.ai_provider,
                error=str(e),
            )
            self._primary_provider = None

        if self.config.ai_fallback_provider:
            try:
                self._fallback_provider = self._create_provider(
                    provider_name=self.config.ai_fallback_provider,
                    api_key=self.config.ai_fallback_api_key,
                    base_url=self.config.ai_fallback_base_url,
                    model=self.config.ai_fallback_model,
                    timeout=self.config.ai_timeout,
                )
                logger.info("Fallback AI provider initialized", provider=self.config.ai_fallback_provider)
            except (AuthenticationError, ValueError) as e:
                logger.warning(
                    "Failed to initialize fallback provider",
                    provider=self.config.ai_fallback_provider,
                    error=str(e),
                )
                self._fallback_provider = None

    @staticmethod
    def _create_provider(
        provider_name: str,
        api_key: str | None,
        base_url: str | None,
        model: str | None,
        timeout: float = 20.0,
    ) -> AIProvider:
        """
        Factory method to create an AI provider instance.

        Raises:
            AuthenticationError: If API key is required but missing
            ValueError: If provider name is unknown
        """
        provider_name = provider_name.lower()

        if provider_name == "ollama":
            return OllamaProvider(base_url=base_url, model=model, timeout=timeout)

        if provider_name in OPENAI_COMPATIBLE_PROVIDERS:
            if not api_key:
                raise AuthenticationError(
                    message=f"API key is required for {provider_name} provider",
                    provider=provider_name,
                )
            return OpenAICompatibleProvider(
                provider_name=provider_name,
                api_key=api_key,
                base_url=base_url,
                model=model,
                timeout=timeout,
            )

        raise ValueError(f"Unknown provider: {provider_name}")

    @property
    def primary_provider(self) -> AIProvider | None:
        return self._primary_provider

    @property
    def fallback_provider(self) -> AIProvider | None:
        return self._fallback_provider

    @property
    def available(self) -> bool:
        return self._primary_provider is not None or self._fallback_provider is not None

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        """
        Send a chat completion request, retrying once on the fallback provider.

        Raises:
            ProviderError: If all providers fail
        """
        errors: list[str] = []
        for provider in (self._primary_provider, self._fallback_provider):
            if provider is None:
                continue
            request_timestamp = self._log_request(provider.name, model, messages)
            try:
                response = await provider.chat_completion(
                    messages=messages,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except ProviderError as e:
                self._log_error(provider.name, e, request_timestamp)
                errors.append(f"{provider.name}: {e}")
                continue
            self._log_response(response, request_timestamp)
            return response

        if not errors:
            raise ProviderError(message="No AI providers available", provider="manager")
        raise ProviderError(
            message=f"All providers failed. {'; '.join(errors)}",
            provider="manager",
            retryable=False,
        )

    async def classify(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.1,
        max_tokens: int | None = 600,
    ) -> dict[str, Any]:
        """Chat completion whose content must be a single JSON object."""
        response = await self.chat_completion(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return extract_json_payload(response.content, provider=response.provider)

    def get_provider_info(self) -> dict[str, Any]:
        return {
            "enabled": self.config.ai_enabled,
            "primary": self._primary_provider.name if self._primary_provider else None,
            "fallback": self._fallback_provider.name if self._fallback_provider else None,
        }
