from __future__ import annotations

import httpx
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
import pytest

from solveur.core.config import Settings
from solveur.core.errors import (
    CompletionFailed,
    EmbeddingUnavailable,
    MessageRequired,
    QuotaExceeded,
    TenantInactive,
    TenantNotFound,
)
from solveur.domain.models import Conversation, Message
from solveur.domain.plans import METRIC_API_CALLS
from solveur.persistence.repos import messages as messages_repo
from solveur.persistence.repos import usage as usage_repo
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.embeddings.fake import FakeEmbeddingProvider, hash_embedding
from solveur.providers.embeddings.openai import OpenAIEmbeddingProvider
from solveur.providers.llm.fake import FakeCompletionProvider
from solveur.providers.vectors.base import VectorSearchClient
from solveur.providers.vectors.memory import InMemoryVectorIndex
from solveur.providers.vectors.pinecone import PineconeVectorIndex
from solveur.services import conversations
from solveur.services.quota import QuotaService
from solveur.services.rag import ChatCommand, ChatPipeline
from solveur.services.telemetry import counters_snapshot
from solveur.services.tenancy import TenantSignal
from solveur.tests.utils.seed import create_tenant, set_usage


PLACEHOLDER = "No specific company information available for this query."


class _BrokenEmbedder:
    name = "broken"

    async def embed(self, text: str) -> list[float]:
        raise EmbeddingUnavailable("provider down")


class _FailingCompleter:
    name = "failing"

    async def complete(self, system_prompt: str, user_message: str) -> str:
        raise CompletionFailed(reason="upstream_error")


def _pipeline(
    completer=None,
    *,
    embedder=None,
    index=None,
    quota: QuotaService | None = None,
) -> ChatPipeline:
    return ChatPipeline(
        embedder=EmbeddingClient(embedder or FakeEmbeddingProvider()),
        vectors=VectorSearchClient(index if index is not None else InMemoryVectorIndex()),
        completer=completer or FakeCompletionProvider("Here is what I found."),
        quota=quota or QuotaService(),
    )


async def _count(session, model) -> int:
    return int((await session.execute(select(func.count()).select_from(model))).scalar_one())


@pytest.mark.asyncio
async def test_chat_turn_stores_pair_and_charges_one_call(session) -> None:
    tenant = await create_tenant(session)
    completer = FakeCompletionProvider("We open at nine.")
    quota = QuotaService()
    result = await _pipeline(completer, quota=quota).run(
        session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="  When do you open?  ")
    )

    assert result.response == "We open at nine."
    assert result.persisted is True
    assert result.usage.current == 1
    assert result.usage.limit == 1000
    messages = await conversations.list_messages(session, tenant.id, result.conversation_id)
    assert [(m.role, m.content, m.sequence) for m in messages] == [
        ("USER", "When do you open?", 1),
        ("ASSISTANT", "We open at nine.", 2),
    ]
    assert completer.calls[0][1] == "When do you open?"


@pytest.mark.asyncio
async def test_follow_up_appends_to_same_conversation(session) -> None:
    tenant = await create_tenant(session)
    pipeline = _pipeline()
    signal = TenantSignal(tenant_id=tenant.id)
    first = await pipeline.run(session, ChatCommand(signal=signal, message="Hello"))
    second = await pipeline.run(
        session, ChatCommand(signal=signal, message="And again", conversation_id=first.conversation_id)
    )

    assert second.conversation_id == first.conversation_id
    messages = await conversations.list_messages(session, tenant.id, first.conversation_id)
    assert [m.sequence for m in messages] == [1, 2, 3, 4]
    assert second.usage.current == 2


@pytest.mark.asyncio
async def test_foreign_conversation_id_starts_new_conversation(session) -> None:
    owner = await create_tenant(session, name="Owner Co")
    intruder = await create_tenant(session, name="Intruder Co")
    pipeline = _pipeline()
    original = await pipeline.run(session, ChatCommand(signal=TenantSignal(tenant_id=owner.id), message="Secret"))

    result = await pipeline.run(
        session,
        ChatCommand(
            signal=TenantSignal(tenant_id=intruder.id),
            message="Let me in",
            conversation_id=original.conversation_id,
        ),
    )

    assert result.conversation_id != original.conversation_id
    owner_messages = await conversations.list_messages(session, owner.id, original.conversation_id)
    assert len(owner_messages) == 2


@pytest.mark.asyncio
async def test_quota_boundary_allows_last_call_then_rejects(session) -> None:
    tenant = await create_tenant(session, plan="FREE")
    quota = QuotaService()
    await set_usage(session, tenant_id=tenant.id, day=quota.today(), metric=METRIC_API_CALLS, count=999)
    completer = FakeCompletionProvider("ok")
    pipeline = _pipeline(completer, quota=quota)
    signal = TenantSignal(tenant_id=tenant.id)

    result = await pipeline.run(session, ChatCommand(signal=signal, message="last one"))
    assert result.usage.current == 1000

    with pytest.raises(QuotaExceeded) as excinfo:
        await pipeline.run(session, ChatCommand(signal=signal, message="one more"))
    assert excinfo.value.details["current"] == 1000
    # The rejected call never reached the model and never wrote anything.
    assert len(completer.calls) == 1
    assert await usage_repo.get_count(session, tenant.id, quota.today(), METRIC_API_CALLS) == 1000
    assert await _count(session, Message) == 2


@pytest.mark.asyncio
async def test_retrieved_context_reaches_prompt_for_own_tenant_only(session) -> None:
    tenant = await create_tenant(session, name="Acme Corp")
    other = await create_tenant(session, name="Globex")
    index = InMemoryVectorIndex()
    await index.upsert("a", hash_embedding("refund policy thirty days"), "Refunds within 30 days.", tenant.id, {})
    await index.upsert("b", hash_embedding("refund policy ninety days"), "Globex refunds 90 days.", other.id, {})
    completer = FakeCompletionProvider("answer")

    result = await _pipeline(completer, index=index).run(
        session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="What is the refund policy?")
    )

    system_prompt = completer.calls[0][0]
    assert result.grounded is True
    assert "Refunds within 30 days." in system_prompt
    assert "Globex" not in system_prompt
    assert "Acme Corp" in system_prompt


@pytest.mark.asyncio
async def test_embedding_failure_degrades_to_placeholder(session) -> None:
    tenant = await create_tenant(session)
    completer = FakeCompletionProvider("General answer.")
    result = await _pipeline(completer, embedder=_BrokenEmbedder()).run(
        session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="Anything?")
    )

    assert result.response == "General answer."
    assert result.grounded is False
    assert PLACEHOLDER in completer.calls[0][0]
    counters = counters_snapshot()
    assert counters["embedding_unavailable"] == 1
    assert counters["chat_ungrounded"] == 1


@pytest.mark.asyncio
async def test_completion_failure_stores_nothing_and_charges_nothing(session) -> None:
    tenant = await create_tenant(session)
    quota = QuotaService()
    with pytest.raises(CompletionFailed):
        await _pipeline(_FailingCompleter(), quota=quota).run(
            session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="Hello?")
        )

    assert await _count(session, Message) == 0
    assert await _count(session, Conversation) == 0
    assert await usage_repo.get_count(session, tenant.id, quota.today(), METRIC_API_CALLS) == 0


@pytest.mark.asyncio
async def test_blank_completion_is_a_failure(session) -> None:
    tenant = await create_tenant(session)
    with pytest.raises(CompletionFailed):
        await _pipeline(FakeCompletionProvider("   ")).run(
            session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="Hello?")
        )
    assert await _count(session, Message) == 0


@pytest.mark.asyncio
async def test_persistence_failure_still_answers_and_charges(session, monkeypatch) -> None:
    tenant = await create_tenant(session)
    quota = QuotaService()

    async def _broken_append(*args, **kwargs):
        raise OperationalError("INSERT INTO messages", {}, Exception("disk full"))

    monkeypatch.setattr(conversations, "append_pair", _broken_append)
    result = await _pipeline(FakeCompletionProvider("Still here."), quota=quota).run(
        session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="Hello?")
    )

    assert result.response == "Still here."
    assert result.persisted is False
    assert result.conversation_id
    assert result.usage.current == 1
    assert counters_snapshot()["persistence_failed"] == 1
    assert await _count(session, Message) == 0


@pytest.mark.asyncio
async def test_sequence_conflict_still_answers_and_keeps_history(session, monkeypatch) -> None:
    tenant = await create_tenant(session)
    pipeline = _pipeline()
    signal = TenantSignal(tenant_id=tenant.id)
    first = await pipeline.run(session, ChatCommand(signal=signal, message="Hello"))

    async def _stale_sequence(session, conversation_id):
        return 1

    monkeypatch.setattr(messages_repo, "next_sequence", _stale_sequence)
    second = await pipeline.run(
        session, ChatCommand(signal=signal, message="And again", conversation_id=first.conversation_id)
    )

    assert second.response
    assert second.persisted is False
    assert second.usage.current == 2
    assert counters_snapshot()["persistence_failed"] == 1
    messages = await conversations.list_messages(session, tenant.id, first.conversation_id)
    assert [m.sequence for m in messages] == [1, 2]


@pytest.mark.asyncio
async def test_empty_message_rejected_before_tenant_lookup(session) -> None:
    with pytest.raises(MessageRequired):
        await _pipeline().run(session, ChatCommand(signal=TenantSignal(tenant_id="missing"), message="   "))


@pytest.mark.asyncio
async def test_unknown_and_inactive_tenants_rejected(session) -> None:
    suspended = await create_tenant(session, status="SUSPENDED")
    completer = FakeCompletionProvider("never")
    pipeline = _pipeline(completer)

    with pytest.raises(TenantNotFound):
        await pipeline.run(session, ChatCommand(signal=TenantSignal(tenant_slug="nobody"), message="hi"))
    with pytest.raises(TenantInactive):
        await pipeline.run(session, ChatCommand(signal=TenantSignal(tenant_id=suspended.id), message="hi"))
    assert completer.calls == []


def _json_client(body) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)))


@pytest.mark.asyncio
async def test_malformed_embedding_response_still_answers(session) -> None:
    tenant = await create_tenant(session)
    completer = FakeCompletionProvider("General answer.")
    embedder = OpenAIEmbeddingProvider(
        Settings(openai_api_key="sk-test"), client=_json_client({"data": [{"embedding": None}]})
    )

    result = await _pipeline(completer, embedder=embedder).run(
        session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="Anything?")
    )

    assert result.response == "General answer."
    assert result.grounded is False
    assert PLACEHOLDER in completer.calls[0][0]
    assert result.usage.current == 1


@pytest.mark.asyncio
async def test_malformed_search_response_still_answers(session) -> None:
    tenant = await create_tenant(session)
    completer = FakeCompletionProvider("General answer.")
    index = PineconeVectorIndex(
        Settings(pinecone_api_key="pc-key", pinecone_host="idx.svc.pinecone.io"),
        client=_json_client([{"id": "d:0", "score": 0.9}]),
    )

    result = await _pipeline(completer, index=index).run(
        session, ChatCommand(signal=TenantSignal(tenant_id=tenant.id), message="Anything?")
    )

    assert result.grounded is False
    assert PLACEHOLDER in completer.calls[0][0]
    assert counters_snapshot()["vector_search_unavailable"] == 1
