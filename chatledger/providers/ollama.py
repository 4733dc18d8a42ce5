"""
Ollama AI Provider implementation.

Self-hosted inference through Ollama's native /api/chat endpoint, with
``format: json`` so the classifier and extractor prompts come back parseable.
"""

import time
from typing import Any

import httpx
from loguru import logger

from .base import AIProvider, AIResponse, ProviderError


class OllamaProvider(AIProvider):
    """
    AI Provider implementation for Ollama.

    Attributes:
        base_url: The Ollama server URL (default: http://ollama:11434)
        model: The model to use (e.g., qwen2.5:3b-instruct, llama3)
        timeout: Request timeout in seconds
    """

    DEFAULT_BASE_URL = "http://ollama:11434"
    DEFAULT_MODEL = "qwen2.5:3b-instruct"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 20.0,
    ):
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "ollama"

    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> AIResponse:
        effective_model = model or self.model
        payload: dict[str, Any] = {
            "model": effective_model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "options": {"temperature": temperature},
        }
        if max_tokens is not None:
            payload["options"]["num_predict"] = max_tokens

        logger.debug(
            "Sending request to Ollama",
            model=effective_model,
            base_url=self.base_url,
            message_count=len(messages),
        )

        start_time = time.perf_counter()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderError(
                message=f"Ollama request timed out after {self.timeout}s",
                provider=self.name,
                retryable=True,
            ) from e
        except httpx.ConnectError as e:
            raise ProviderError(
                message=f"Failed to connect to Ollama at {self.base_url}",
                provider=self.name,
                retryable=True,
            ) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                message=f"Ollama returned error: {e.response.status_code}",
                provider=self.name,
                status_code=e.response.status_code,
                retryable=e.response.status_code >= 500,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                message=f"Ollama transport error: {e}",
                provider=self.name,
                retryable=True,
            ) from e
        except ValueError as e:
            raise ProviderError(
                message="Ollama returned a non-JSON body",
                provider=self.name,
                retryable=True,
            ) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        content = (data.get("message") or {}).get("content", "")

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            usage = {
                "input_tokens": data.get("prompt_eval_count", 0),
                "output_tokens": data.get("eval_count", 0),
            }

        logger.debug(
            "Ollama response received",
            model=effective_model,
            latency_ms=round(latency_ms, 2),
            response_length=len(content),
            usage=usage,
        )

        return AIResponse(
            content=content,
            model=data.get("model", effective_model),
            provider=self.name,
            usage=usage,
            latency_ms=latency_ms,
            raw_response=data,
        )
