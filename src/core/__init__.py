"""Generation service: LLM providers used for background spymaster thinking."""

from .llm import (
    LLMProvider, LLMResponse, HTTPProvider, OpenRouterProvider, AnthropicProvider,
    MockProvider, create_provider,
)

__all__ = [
    "LLMProvider", "LLMResponse", "HTTPProvider", "OpenRouterProvider",
    "AnthropicProvider", "MockProvider", "create_provider",
]
