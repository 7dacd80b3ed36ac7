from __future__ import annotations

import json

import httpx
import pytest

from solveur.core.config import EMBED_DIM, Settings
from solveur.core.errors import CompletionFailed, EmbeddingUnavailable
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.embeddings.fake import FakeEmbeddingProvider, hash_embedding
from solveur.providers.embeddings.openai import OpenAIEmbeddingProvider
from solveur.providers.llm.openai_chat import OpenAIChatProvider
from solveur.services.telemetry import counters_snapshot, external_call_stats


class BuggyEmbeddings:
    name = "buggy"

    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("sdk bug")


class BrokenEmbeddings:
    name = "broken"

    async def embed(self, text: str) -> list[float]:
        raise EmbeddingUnavailable("provider timed out")


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_hash_embedding_is_deterministic_and_normalized() -> None:
    first = hash_embedding("Support hours are 9 to 6")
    assert first == hash_embedding("Support hours are 9 to 6")
    assert len(first) == EMBED_DIM
    assert abs(sum(v * v for v in first) - 1.0) < 1e-9
    assert hash_embedding("") == [0.0] * EMBED_DIM


@pytest.mark.asyncio
async def test_client_turns_failures_into_none() -> None:
    client = EmbeddingClient(BrokenEmbeddings())
    assert await client.embed("hello") is None
    assert counters_snapshot()["embedding_unavailable"] == 1
    assert external_call_stats(60)["embeddings.broken"]["failures"] == 1


@pytest.mark.asyncio
async def test_unexpected_provider_errors_still_degrade() -> None:
    client = EmbeddingClient(BuggyEmbeddings())
    assert await client.embed("hello") is None
    assert counters_snapshot()["embedding_unavailable"] == 1

    with pytest.raises(EmbeddingUnavailable) as excinfo:
        await client.embed_strict("hello")
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert external_call_stats(60)["embeddings.buggy"]["failures"] == 2


@pytest.mark.asyncio
async def test_strict_embedding_raises() -> None:
    with pytest.raises(EmbeddingUnavailable):
        await EmbeddingClient(BrokenEmbeddings()).embed_strict("hello")
    assert len(await EmbeddingClient(FakeEmbeddingProvider()).embed_strict("hello")) == EMBED_DIM


@pytest.mark.asyncio
async def test_openai_embeddings_request_shape() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.5] * EMBED_DIM}]})

    settings = Settings(openai_api_key="sk-test", openai_embedding_model="text-embedding-3-small")
    provider = OpenAIEmbeddingProvider(settings, client=_mock_client(handler))
    vector = await provider.embed("hello")

    assert len(vector) == EMBED_DIM
    assert captured["url"] == "https://api.openai.com/v1/embeddings"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"] == {"model": "text-embedding-3-small", "input": "hello"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401),
        httpx.Response(500),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}]}),
        httpx.Response(200, json={"data": [{"embedding": None}]}),
        httpx.Response(200, json={"data": [{"embedding": {"values": []}}]}),
        httpx.Response(200, json=[{"embedding": []}]),
    ],
)
async def test_openai_embedding_failures_are_unavailable(response: httpx.Response) -> None:
    provider = OpenAIEmbeddingProvider(
        Settings(openai_api_key="sk-test"), client=_mock_client(lambda request: response)
    )
    with pytest.raises(EmbeddingUnavailable):
        await provider.embed("hello")


@pytest.mark.asyncio
async def test_openai_embeddings_without_key_fail_fast() -> None:
    provider = OpenAIEmbeddingProvider(Settings(openai_api_key=None))
    with pytest.raises(EmbeddingUnavailable):
        await provider.embed("hello")


@pytest.mark.asyncio
async def test_openai_chat_sends_system_and_user_turns() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Hi there"}}]})

    settings = Settings(openai_api_key="sk-test", openai_chat_model="gpt-4", openai_temperature=0.7)
    provider = OpenAIChatProvider(settings, client=_mock_client(handler))
    assert await provider.complete("system prompt", "hello") == "Hi there"
    body = captured["body"]
    assert body["model"] == "gpt-4"
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 1000
    assert body["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "hello"},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(429),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]}),
    ],
)
async def test_openai_chat_failures_raise_completion_failed(response: httpx.Response) -> None:
    provider = OpenAIChatProvider(Settings(openai_api_key="sk-test"), client=_mock_client(lambda request: response))
    with pytest.raises(CompletionFailed) as excinfo:
        await provider.complete("system", "hello")
    assert excinfo.value.message == "I could not generate a response right now. Please try again."


@pytest.mark.asyncio
async def test_openai_chat_transport_error_is_completion_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    provider = OpenAIChatProvider(Settings(openai_api_key="sk-test"), client=_mock_client(handler))
    with pytest.raises(CompletionFailed):
        await provider.complete("system", "hello")
