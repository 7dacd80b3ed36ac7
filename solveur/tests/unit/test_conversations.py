from __future__ import annotations

import pytest

from solveur.core.errors import PersistenceFailed
from solveur.persistence.repos import messages as messages_repo
from solveur.services import conversations
from solveur.tests.utils.seed import create_tenant


def test_title_is_first_fifty_characters() -> None:
    assert conversations.title_from_message("  hello\n  world ") == "hello world"
    long = "x" * 60
    assert conversations.title_from_message(long) == "x" * 50 + "..."


@pytest.mark.asyncio
async def test_get_or_create_reuses_only_own_active_conversation(session) -> None:
    owner = await create_tenant(session)
    other = await create_tenant(session)
    first = await conversations.get_or_create(
        session, conversation_id=None, tenant_id=owner.id, user_id="u1", title="Hi"
    )
    await session.commit()

    again = await conversations.get_or_create(session, conversation_id=first.id, tenant_id=owner.id, user_id="u1")
    assert again.id == first.id

    foreign = await conversations.get_or_create(session, conversation_id=first.id, tenant_id=other.id, user_id=None)
    assert foreign.id != first.id
    assert foreign.tenant_id == other.id
    await session.commit()

    assert await conversations.close_conversation(session, owner.id, first.id) is True
    reopened = await conversations.get_or_create(session, conversation_id=first.id, tenant_id=owner.id, user_id="u1")
    assert reopened.id != first.id


@pytest.mark.asyncio
async def test_append_pair_sequences_and_listing(session) -> None:
    tenant = await create_tenant(session)
    conversation = await conversations.get_or_create(
        session, conversation_id=None, tenant_id=tenant.id, user_id=None, title="Q"
    )
    await conversations.append_pair(session, conversation, "question one", "answer one")
    await session.commit()
    await conversations.append_pair(session, conversation, "question two", "answer two", metadata={"grounded": True})
    await session.commit()

    messages = await conversations.list_messages(session, tenant.id, conversation.id)
    assert [(m.sequence, m.role) for m in messages] == [
        (1, "USER"),
        (2, "ASSISTANT"),
        (3, "USER"),
        (4, "ASSISTANT"),
    ]
    assert messages[3].metadata_json == {"grounded": True}

    other = await create_tenant(session)
    assert await conversations.list_messages(session, other.id, conversation.id) == []
    assert [c.id for c in await conversations.list_conversations(session, tenant.id)] == [conversation.id]
    assert await conversations.close_conversation(session, other.id, conversation.id) is False


@pytest.mark.asyncio
async def test_append_pair_rejects_a_sequence_already_taken(session, monkeypatch) -> None:
    tenant = await create_tenant(session)
    conversation = await conversations.get_or_create(
        session, conversation_id=None, tenant_id=tenant.id, user_id=None, title="Q"
    )
    conversation_id = conversation.id
    await conversations.append_pair(session, conversation, "question one", "answer one")
    await session.commit()

    # Simulates a concurrent turn that read max(sequence) before this one committed.
    async def _stale_sequence(session, conversation_id):
        return 1

    monkeypatch.setattr(messages_repo, "next_sequence", _stale_sequence)
    with pytest.raises(PersistenceFailed) as excinfo:
        await conversations.append_pair(session, conversation, "question two", "answer two")

    assert excinfo.value.details["conversation_id"] == conversation_id
    messages = await conversations.list_messages(session, tenant.id, conversation_id)
    assert [(m.sequence, m.content) for m in messages] == [(1, "question one"), (2, "answer one")]
