"""
OpenAI-Compatible AI Provider implementation.

Covers every service that speaks the OpenAI chat format (OpenAI, Groq,
Together, Deepseek, Qwen, Kimi/Moonshot): Bearer auth and
POST {base_url}/v1/chat/completions.
"""

import time
from typing import Any

import httpx
from loguru import logger

from .base import (
    AIProvider,
    AIResponse,
    AuthenticationError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
)


# Default base URLs for each provider
PROVIDER_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com",
    "groq": "https://api.groq.com/openai",
    "together": "https://api.together.xyz",
    "deepseek": "https://api.deepseek.com",
    "qwen": "https://dashscope.aliyuncs.com/compatible-mode",
    "kimi": "https://api.moonshot.cn",
    "moonshot": "https://api.moonshot.cn",
}

# Default models for each provider
PROVIDER_DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "groq": "llama-3.1-8b-instant",
    "together": "meta-llama/Llama-3-8b-chat-hf",
    "deepseek": "deepseek-chat",
    "qwen": "qwen-turbo",
    "kimi": "moonshot-v1-8k",
    "moonshot": "moonshot-v1-8k",
}


class OpenAICompatibleProvider(AIProvider):
    """
    AI Provider implementation for OpenAI-compatible APIs.

    Attributes:
        provider_name: The specific provider name (e.g., 'openai', 'groq')
        base_url: The API base URL
        api_key: The API key for authentication
        model: The model to use
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        api_key: str,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 20.0,
    ):
        self.provider_name = provider_name.lower()

        if not api_key or not api_key.strip():
            raise AuthenticationError(
                message=f"API key is required for {self.provider_name} provider",
                provider=self.provider_name,
            )

        self.api_key = api_key.strip()
        self.base_url = (
            base_url.rstrip("/") if base_url
            else PROVIDER_BASE_URLS.get(self.provider_name, "https://api.openai.com")
        )
        self.model = model or PROVIDER_DEFAULT_MODELS.get(self.provider_name, "gpt-4o-mini")
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.provider_name

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _get_endpoint(self) -> str:
        return f"{self.base_url}/v1/chat/completions"

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        """
        Send a chat completion request to the OpenAI-compatible API.

        Raises:
            AuthenticationError: If authentication fails
            RateLimitError: If rate limit is exceeded
            QuotaExceededError: If quota is exhausted
            ProviderError: For other API errors
        """
        effective_model = model or self.model
        payload = self.build_request_payload(messages, effective_model, temperature, max_tokens)

        logger.debug(
            "Sending request to OpenAI-compatible API",
            provider=self.provider_name,
            model=effective_model,
            base_url=self.base_url,
            message_count=len(messages),
        )

        start_time = time.perf_counter()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self._get_endpoint(),
                    headers=self._get_headers(),
                    json=payload,
                )

                if response.status_code == 401:
                    raise AuthenticationError(
                        message=f"Authentication failed for {self.provider_name}: Invalid API key",
                        provider=self.provider_name,
                        status_code=401,
                    )
                elif response.status_code == 429:
                    retry_after = response.headers.get("retry-after")
                    raise RateLimitError(
                        message=f"Rate limit exceeded for {self.provider_name}",
                        provider=self.provider_name,
                        retry_after=float(retry_after) if retry_after else None,
                    )
                elif response.status_code in (402, 403):
                    raise QuotaExceededError(
                        message=f"Quota exceeded or access denied for {self.provider_name}",
                        provider=self.provider_name,
                        status_code=response.status_code,
                    )

                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            raise ProviderError(
                message=f"{self.provider_name} request timed out after {self.timeout}s",
                provider=self.provider_name,
                retryable=True,
            ) from e
        except httpx.ConnectError as e:
            raise ProviderError(
                message=f"Failed to connect to {self.provider_name} at {self.base_url}",
                provider=self.provider_name,
                retryable=True,
            ) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                message=f"{self.provider_name} returned error: {e.response.status_code}",
                provider=self.provider_name,
                status_code=e.response.status_code,
                retryable=e.response.status_code >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                message=f"{self.provider_name} transport error: {e}",
                provider=self.provider_name,
                retryable=True,
            ) from e
        except ValueError as e:
            raise ProviderError(
                message=f"{self.provider_name} returned a non-JSON body",
                provider=self.provider_name,
                retryable=True,
            ) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        content = self._extract_content(data)
        usage = self._extract_usage(data)

        logger.debug(
            "OpenAI-compatible response received",
            provider=self.provider_name,
            model=effective_model,
            latency_ms=round(latency_ms, 2),
            response_length=len(content),
            usage=usage,
        )

        return AIResponse(
            content=content,
            model=data.get("model", effective_model),
            provider=self.provider_name,
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )

    def _extract_content(self, data: dict[str, Any]) -> str:
        try:
            choices = data.get("choices", [])
            if choices:
                return choices[0].get("message", {}).get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError):
            logger.warning(
                "Failed to extract content from response",
                provider=self.provider_name,
                response_keys=list(data.keys()) if isinstance(data, dict) else None,
            )
        return ""

    @staticmethod
    def _extract_usage(data: dict[str, Any]) -> dict[str, int] | None:
        usage = data.get("usage")
        if usage:
            return {
                "input_tokens": usage.get("prompt_tokens", 0),
                "output_tokens": usage.get("completion_tokens", 0),
            }
        return None

    @staticmethod
    def build_request_payload(
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Request body for POST /v1/chat/completions, asking for a JSON object back."""
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    @staticmethod
    def build_auth_header(api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}
