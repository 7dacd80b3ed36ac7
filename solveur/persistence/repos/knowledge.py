from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.domain.models import Document, KnowledgeBase
from solveur.persistence.guards import tenant_predicate


async def create_knowledge_base(
    session: AsyncSession, *, kb_id: str, tenant_id: str, name: str, description: str | None
) -> KnowledgeBase:
    kb = KnowledgeBase(id=kb_id, tenant_id=tenant_id, name=name, description=description, is_active=True)
    session.add(kb)
    return kb


async def get_knowledge_base(session: AsyncSession, tenant_id: str, kb_id: str) -> KnowledgeBase | None:
    result = await session.execute(
        select(KnowledgeBase).where(tenant_predicate(KnowledgeBase, tenant_id), KnowledgeBase.id == kb_id)
    )
    return result.scalar_one_or_none()


async def list_knowledge_bases(session: AsyncSession, tenant_id: str) -> list[tuple[KnowledgeBase, int]]:
    # Pair each knowledge base with its document count in one round trip.
    doc_counts = (
        select(Document.knowledge_base_id, func.count(Document.id).label("document_count"))
        .where(tenant_predicate(Document, tenant_id))
        .group_by(Document.knowledge_base_id)
        .subquery()
    )
    result = await session.execute(
        select(KnowledgeBase, func.coalesce(doc_counts.c.document_count, 0))
        .outerjoin(doc_counts, doc_counts.c.knowledge_base_id == KnowledgeBase.id)
        .where(tenant_predicate(KnowledgeBase, tenant_id))
        .order_by(KnowledgeBase.created_at.desc(), KnowledgeBase.id)
    )
    return [(kb, int(count)) for kb, count in result.all()]


async def create_document(
    session: AsyncSession,
    *,
    document_id: str,
    tenant_id: str,
    knowledge_base_id: str,
    title: str,
    content: str,
    content_type: str,
    size_bytes: int,
    metadata_json: dict[str, Any] | None,
) -> Document:
    # Documents start in "processing" so failed ingestion stays visible.
    doc = Document(
        id=document_id,
        tenant_id=tenant_id,
        knowledge_base_id=knowledge_base_id,
        title=title,
        content=content,
        content_type=content_type,
        size_bytes=size_bytes,
        status="processing",
        metadata_json=metadata_json or {},
    )
    session.add(doc)
    return doc


async def get_document(session: AsyncSession, tenant_id: str, document_id: str) -> Document | None:
    result = await session.execute(
        select(Document).where(tenant_predicate(Document, tenant_id), Document.id == document_id)
    )
    return result.scalar_one_or_none()


async def list_documents(session: AsyncSession, tenant_id: str, knowledge_base_id: str) -> list[Document]:
    result = await session.execute(
        select(Document)
        .where(tenant_predicate(Document, tenant_id), Document.knowledge_base_id == knowledge_base_id)
        .order_by(Document.created_at.desc(), Document.id)
    )
    return list(result.scalars().all())


async def delete_document(session: AsyncSession, tenant_id: str, document_id: str) -> int:
    result = await session.execute(
        delete(Document).where(tenant_predicate(Document, tenant_id), Document.id == document_id)
    )
    return int(result.rowcount or 0)


async def count_documents(session: AsyncSession, *, tenant_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(Document)
    if tenant_id:
        stmt = stmt.where(tenant_predicate(Document, tenant_id))
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def total_storage_bytes(session: AsyncSession, tenant_id: str) -> int:
    result = await session.execute(
        select(func.coalesce(func.sum(Document.size_bytes), 0)).where(tenant_predicate(Document, tenant_id))
    )
    return int(result.scalar_one())
