from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.errors import PersistenceFailed
from solveur.domain.models import Conversation, Message
from solveur.persistence.repos import conversations as conversations_repo
from solveur.persistence.repos import messages as messages_repo


logger = logging.getLogger(__name__)

ROLE_USER = "USER"
ROLE_ASSISTANT = "ASSISTANT"
STATUS_ACTIVE = "ACTIVE"
STATUS_CLOSED = "CLOSED"

_TITLE_MAX = 50


def title_from_message(message: str) -> str:
    cleaned = " ".join(message.split())
    if len(cleaned) <= _TITLE_MAX:
        return cleaned
    return f"{cleaned[:_TITLE_MAX]}..."


async def get_or_create(
    session: AsyncSession,
    *,
    conversation_id: str | None,
    tenant_id: str,
    user_id: str | None,
    title: str | None = None,
    new_id: str | None = None,
) -> Conversation:
    """Return the tenant's ACTIVE conversation for ``conversation_id`` or start a new one.

    A foreign, closed or unknown id is not an error: the caller silently gets a
    fresh conversation so a guessed id can never append to someone else's thread.
    """
    if conversation_id:
        existing = await conversations_repo.get_conversation(session, tenant_id, conversation_id)
        if existing is not None and existing.status == STATUS_ACTIVE:
            return existing
        logger.info(
            "conversation_not_reusable tenant_id=%s conversation_id=%s",
            tenant_id,
            conversation_id,
        )
    return await conversations_repo.create_conversation(
        session,
        conversation_id=new_id or uuid4().hex,
        tenant_id=tenant_id,
        user_id=user_id,
        title=title,
    )


async def append_pair(
    session: AsyncSession,
    conversation: Conversation,
    user_text: str,
    assistant_text: str,
    metadata: dict[str, Any] | None = None,
) -> tuple[Message, Message]:
    # USER then ASSISTANT with consecutive sequence numbers; callers commit.
    await session.flush()
    conversation_id = conversation.id
    sequence = await messages_repo.next_sequence(session, conversation_id)
    user_message = await messages_repo.add_message(
        session,
        conversation_id=conversation_id,
        tenant_id=conversation.tenant_id,
        role=ROLE_USER,
        content=user_text,
        sequence=sequence,
    )
    assistant_message = await messages_repo.add_message(
        session,
        conversation_id=conversation_id,
        tenant_id=conversation.tenant_id,
        role=ROLE_ASSISTANT,
        content=assistant_text,
        sequence=sequence + 1,
        metadata_json=metadata,
    )
    try:
        await session.flush()
    except IntegrityError as exc:
        # Another turn on this conversation claimed the same sequence numbers first.
        await session.rollback()
        logger.warning("message_sequence_conflict conversation_id=%s sequence=%s", conversation_id, sequence)
        raise PersistenceFailed(
            "Conversation was updated concurrently", conversation_id=conversation_id, sequence=sequence
        ) from exc
    return user_message, assistant_message


async def list_messages(session: AsyncSession, tenant_id: str, conversation_id: str) -> list[Message]:
    return await messages_repo.list_messages(session, tenant_id, conversation_id)


async def list_conversations(
    session: AsyncSession, tenant_id: str, *, user_id: str | None = None, limit: int = 50
) -> list[Conversation]:
    return await conversations_repo.list_conversations(session, tenant_id, user_id=user_id, limit=limit)


async def close_conversation(session: AsyncSession, tenant_id: str, conversation_id: str) -> bool:
    updated = await conversations_repo.set_status(session, tenant_id, conversation_id, STATUS_CLOSED)
    await session.commit()
    return updated > 0
