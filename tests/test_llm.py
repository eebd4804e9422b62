"""Tests for the LLM provider layer."""

import httpx
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core import llm
from src.core.llm import (
    AnthropicProvider, MockProvider, OpenRouterProvider, create_provider,
)


class FakeAsyncClient:
    """Stands in for httpx.AsyncClient, replaying scripted responses."""

    script: list = []
    requests: list = []

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def post(self, url, headers=None, json=None, timeout=None):
        FakeAsyncClient.requests.append((url, headers, json))
        step = FakeAsyncClient.script.pop(0)
        if isinstance(step, Exception):
            raise step
        status, payload = step
        return httpx.Response(status, json=payload, request=httpx.Request("POST", url))


@pytest.fixture
def fake_http(monkeypatch):
    sleeps = []

    async def no_sleep(seconds):
        sleeps.append(seconds)

    FakeAsyncClient.script = []
    FakeAsyncClient.requests = []
    monkeypatch.setattr(llm.httpx, "AsyncClient", FakeAsyncClient)
    monkeypatch.setattr(llm.asyncio, "sleep", no_sleep)
    return FakeAsyncClient, sleeps


OPENROUTER_OK = {
    "choices": [{"message": {"content": "CLUE: SEASIDE"}}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 3},
}


class TestMockProvider:
    @pytest.mark.asyncio
    async def test_cycles_responses(self):
        provider = MockProvider(responses=["a", "b"])
        contents = [
            (await provider.complete([{"role": "user", "content": "hi"}])).content
            for _ in range(3)
        ]
        assert contents == ["a", "b", "a"]
        assert provider.call_count == 3

    @pytest.mark.asyncio
    async def test_fail_times(self):
        provider = MockProvider(responses=["ok"], fail_times=2)
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await provider.complete([])
        assert (await provider.complete([])).content == "ok"


class TestCreateProvider:
    def test_mock(self):
        provider = create_provider("mock", model="m")
        assert isinstance(provider, MockProvider)
        assert provider.model == "m"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_provider("nope")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError):
            create_provider("openrouter")
        with pytest.raises(ValueError):
            create_provider("anthropic")


class TestHttpProviders:
    @pytest.mark.asyncio
    async def test_openrouter_parses_response(self, fake_http):
        client, _ = fake_http
        client.script = [(200, OPENROUTER_OK)]

        provider = OpenRouterProvider(model="m", api_key="key")
        response = await provider.complete([{"role": "user", "content": "hi"}])

        assert response.content == "CLUE: SEASIDE"
        assert (response.input_tokens, response.output_tokens) == (12, 3)
        url, headers, body = client.requests[0]
        assert url.endswith("/chat/completions")
        assert headers["Authorization"] == "Bearer key"
        assert body["model"] == "m"

    @pytest.mark.asyncio
    async def test_anthropic_moves_system_prompt(self, fake_http):
        client, _ = fake_http
        client.script = [(200, {
            "content": [{"text": "CLUE: SEASIDE"}],
            "usage": {"input_tokens": 5, "output_tokens": 2},
        })]

        provider = AnthropicProvider(model="claude", api_key="key")
        response = await provider.complete([
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ])

        assert response.content == "CLUE: SEASIDE"
        _, headers, body = client.requests[0]
        assert headers["x-api-key"] == "key"
        assert body["system"] == "be brief"
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_retries_rate_limits_and_network_errors(self, fake_http):
        client, sleeps = fake_http
        client.script = [
            (429, {"error": {"message": "slow down"}}),
            httpx.ConnectError("refused"),
            (200, OPENROUTER_OK),
        ]

        provider = OpenRouterProvider(model="m", api_key="key", max_retries=3)
        response = await provider.complete([])

        assert response.content == "CLUE: SEASIDE"
        assert sleeps == [1, 2]

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, fake_http):
        client, sleeps = fake_http
        client.script = [(400, {"error": {"message": "bad request"}})]

        provider = OpenRouterProvider(model="m", api_key="key")
        with pytest.raises(RuntimeError, match="bad request"):
            await provider.complete([])
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, fake_http):
        client, _ = fake_http
        client.script = [(500, {"error": {"message": "down"}})] * 2

        provider = OpenRouterProvider(model="m", api_key="key", max_retries=2)
        with pytest.raises(RuntimeError, match="down"):
            await provider.complete([])
