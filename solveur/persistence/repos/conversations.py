from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import Conversation
from solveur.persistence.guards import tenant_predicate


async def get_conversation(session: AsyncSession, tenant_id: str, conversation_id: str) -> Conversation | None:
    # Tenant predicate is part of the lookup so a foreign id reads as missing.
    result = await session.execute(
        select(Conversation).where(
            tenant_predicate(Conversation, tenant_id), Conversation.id == conversation_id
        )
    )
    return result.scalar_one_or_none()


async def create_conversation(
    session: AsyncSession,
    *,
    conversation_id: str,
    tenant_id: str,
    user_id: str | None,
    title: str | None,
) -> Conversation:
    conversation = Conversation(
        id=conversation_id,
        tenant_id=tenant_id,
        user_id=user_id,
        title=title,
        status="ACTIVE",
    )
    session.add(conversation)
    return conversation


async def list_conversations(
    session: AsyncSession, tenant_id: str, *, user_id: str | None = None, limit: int = 50
) -> list[Conversation]:
    stmt = select(Conversation).where(tenant_predicate(Conversation, tenant_id))
    if user_id:
        stmt = stmt.where(Conversation.user_id == user_id)
    result = await session.execute(stmt.order_by(Conversation.updated_at.desc(), Conversation.id).limit(limit))
    return list(result.scalars().all())


async def set_status(session: AsyncSession, tenant_id: str, conversation_id: str, status: str) -> int:
    result = await session.execute(
        update(Conversation)
        .where(tenant_predicate(Conversation, tenant_id), Conversation.id == conversation_id)
        .values(status=status)
    )
    return int(result.rowcount or 0)


async def count_conversations(
    session: AsyncSession, *, tenant_id: str | None = None, status: str | None = None
) -> int:
    stmt = select(func.count()).select_from(Conversation)
    if tenant_id:
        stmt = stmt.where(tenant_predicate(Conversation, tenant_id))
    if status:
        stmt = stmt.where(Conversation.status == status)
    result = await session.execute(stmt)
    return int(result.scalar_one())
