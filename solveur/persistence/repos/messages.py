from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import Message
from solveur.persistence.guards import tenant_predicate


async def next_sequence(session: AsyncSession, conversation_id: str) -> int:
    result = await session.execute(
        select(func.coalesce(func.max(Message.sequence), 0)).where(Message.conversation_id == conversation_id)
    )
    return int(result.scalar_one()) + 1


async def add_message(
    session: AsyncSession,
    *,
    conversation_id: str,
    tenant_id: str,
    role: str,
    content: str,
    sequence: int,
    metadata_json: dict[str, Any] | None = None,
) -> Message:
    message = Message(
        id=uuid4().hex,
        conversation_id=conversation_id,
        tenant_id=tenant_id,
        role=role,
        content=content,
        sequence=sequence,
        metadata_json=metadata_json,
    )
    session.add(message)
    return message


async def list_messages(session: AsyncSession, tenant_id: str, conversation_id: str) -> list[Message]:
    result = await session.execute(
        select(Message)
        .where(tenant_predicate(Message, tenant_id), Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.sequence.asc())
    )
    return list(result.scalars().all())
