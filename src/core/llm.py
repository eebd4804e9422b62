"""LLM provider abstraction for the clue/guess generation service."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_NETWORK_ERRORS = (
    httpx.RemoteProtocolError, httpx.ReadError, httpx.ConnectError, httpx.TimeoutException,
)


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    raw_response: dict[str, Any] | None = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    model: str

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        """Generate a completion from the LLM."""
        pass


class HTTPProvider(LLMProvider):
    """
    Base for providers that POST JSON to a hosted API.

    Rate limits (429), server errors (5xx) and network failures are retried
    with exponential backoff; other errors raise RuntimeError immediately.
    """

    service = "LLM"
    api_key_env = ""
    default_base_url = ""

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
    ):
        self.model = model
        self.api_key = api_key or os.environ.get(self.api_key_env)
        self.base_url = base_url or self.default_base_url
        self.timeout = timeout
        self.max_retries = max_retries

        if not self.api_key:
            raise ValueError(
                f"{self.service} API key required. Set {self.api_key_env} environment "
                "variable or pass api_key parameter."
            )

    async def _post(self, path: str, headers: dict[str, str], body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            wait_time = 2 ** attempt
            final_attempt = attempt == self.max_retries - 1
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, headers=headers, json=body, timeout=self.timeout)
            except RETRYABLE_NETWORK_ERRORS as e:
                last_error = e
                if final_attempt:
                    raise RuntimeError(
                        f"{self.service} network error after {self.max_retries} attempts: {e}"
                    ) from e
                logger.warning(
                    f"{self.service} network error ({type(e).__name__}), retrying in "
                    f"{wait_time}s (attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(wait_time)
                continue

            if response.status_code == 200:
                return response.json()

            try:
                error_msg = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                error_msg = response.text
            last_error = RuntimeError(
                f"{self.service} API error ({response.status_code}): {error_msg}"
            )

            if final_attempt or not (response.status_code == 429 or response.status_code >= 500):
                raise last_error
            logger.warning(
                f"{self.service} API error {response.status_code}, retrying in {wait_time}s "
                f"(attempt {attempt + 1}/{self.max_retries})"
            )
            await asyncio.sleep(wait_time)

        raise RuntimeError(f"{self.service} failed after {self.max_retries} attempts") from last_error


class OpenRouterProvider(HTTPProvider):
    """Chat completions through OpenRouter."""

    service = "OpenRouter"
    api_key_env = "OPENROUTER_API_KEY"
    default_base_url = "https://openrouter.ai/api/v1"

    def __init__(self, model: str = "anthropic/claude-3.5-sonnet", **kwargs):
        kwargs.setdefault("timeout", 120.0)
        super().__init__(model, **kwargs)

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        start_time = time.perf_counter()
        data = await self._post(
            "/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            body={
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

        usage = data.get("usage", {})
        return LLMResponse(
            content=data["choices"][0]["message"]["content"],
            model=self.model,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            latency_ms=(time.perf_counter() - start_time) * 1000,
            raw_response=data,
        )


class AnthropicProvider(HTTPProvider):
    """Anthropic Messages API. System messages go in the top-level ``system`` field."""

    service = "Anthropic"
    api_key_env = "ANTHROPIC_API_KEY"
    default_base_url = "https://api.anthropic.com/v1"

    def __init__(self, model: str = "claude-sonnet-4-20250514", **kwargs):
        super().__init__(model, **kwargs)

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        start_time = time.perf_counter()

        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": m["role"], "content": m["content"]}
                for m in messages if m["role"] != "system"
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system:
            body["system"] = system

        data = await self._post(
            "/messages",
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            body=body,
        )

        usage = data.get("usage", {})
        return LLMResponse(
            content=data["content"][0]["text"],
            model=self.model,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            latency_ms=(time.perf_counter() - start_time) * 1000,
            raw_response=data,
        )


class MockProvider(LLMProvider):
    """Mock LLM provider for testing.

    ``fail_times`` makes the first N calls raise RuntimeError; ``delay``
    simulates service latency in seconds.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        model: str = "mock-model",
        fail_times: int = 0,
        delay: float = 0.0,
    ):
        self.responses = responses or ["Mock response"]
        self.model = model
        self.fail_times = fail_times
        self.delay = delay
        self.call_count = 0
        self.last_messages: list[dict[str, str]] = []

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        self.last_messages = messages
        self.call_count += 1

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.call_count <= self.fail_times:
            raise RuntimeError("Mock generation failure")

        content = self.responses[(self.call_count - 1) % len(self.responses)]
        return LLMResponse(
            content=content,
            model=self.model,
            input_tokens=len(str(messages)) // 4,
            output_tokens=len(content) // 4,
            latency_ms=self.delay * 1000 or 10.0,
            raw_response=None,
        )


def create_provider(
    provider_type: str = "openrouter",
    model: str | None = None,
    api_key: str | None = None,
    **kwargs,
) -> LLMProvider:
    """Factory function to create LLM providers."""
    providers = {
        "openrouter": OpenRouterProvider,
        "anthropic": AnthropicProvider,
        "mock": MockProvider,
    }

    if provider_type not in providers:
        raise ValueError(f"Unknown provider: {provider_type}. Options: {list(providers.keys())}")

    provider_kwargs: dict[str, Any] = {}
    if model:
        provider_kwargs["model"] = model
    if api_key:
        provider_kwargs["api_key"] = api_key
    provider_kwargs.update(kwargs)

    return providers[provider_type](**provider_kwargs)
