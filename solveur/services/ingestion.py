from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.config import get_settings
from solveur.core.errors import EmbeddingUnavailable, QuotaExceeded, VectorSearchUnavailable
from solveur.domain.models import Document, KnowledgeBase, Tenant
from solveur.domain.plans import METRIC_DOCUMENTS, METRIC_STORAGE, UNLIMITED, get_plan_limits
from solveur.ingestion.chunking import chunk_text
from solveur.persistence.repos import knowledge as knowledge_repo
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.vectors.base import VectorSearchClient
from solveur.services.quota import QuotaService, get_quota_service


logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_ACTIVE = "active"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class UploadedText:
    title: str
    content: str
    content_type: str = "text/plain"


def vector_id(document_id: str, index: int) -> str:
    return f"{document_id}:{index}"


async def create_knowledge_base(
    session: AsyncSession, tenant_id: str, name: str, description: str | None = None
) -> KnowledgeBase:
    kb = await knowledge_repo.create_knowledge_base(
        session, kb_id=uuid4().hex, tenant_id=tenant_id, name=name.strip(), description=description
    )
    await session.commit()
    logger.info("knowledge_base_created tenant_id=%s knowledge_base_id=%s", tenant_id, kb.id)
    return kb


async def check_document_allowance(
    session: AsyncSession, tenant: Tenant, size_bytes: int, *, count: int = 1
) -> None:
    # Documents and storage are lifetime allowances, unlike the daily API call budget.
    limits = get_plan_limits(tenant.plan)
    if limits.documents != UNLIMITED:
        existing = await knowledge_repo.count_documents(session, tenant_id=tenant.id)
        if existing + count > limits.documents:
            raise QuotaExceeded(
                "Document limit reached for your plan.",
                metric=METRIC_DOCUMENTS,
                current=existing,
                limit=limits.documents,
            )
    if limits.storage != UNLIMITED:
        used = await knowledge_repo.total_storage_bytes(session, tenant.id)
        if used + size_bytes > limits.storage:
            raise QuotaExceeded(
                "Storage limit reached for your plan.", metric=METRIC_STORAGE, current=used, limit=limits.storage
            )


async def ingest_document(
    session: AsyncSession,
    *,
    tenant: Tenant,
    knowledge_base_id: str,
    upload: UploadedText,
    embedder: EmbeddingClient,
    vectors: VectorSearchClient,
    quota: QuotaService | None = None,
) -> Document:
    """Store a text document and index its chunks for retrieval.

    The document row is committed as ``processing`` first, so a failure while
    embedding or indexing leaves an ``error`` row with its reason rather than
    nothing at all.
    """
    settings = get_settings()
    tenant_id = tenant.id
    size_bytes = len(upload.content.encode("utf-8"))
    await check_document_allowance(session, tenant, size_bytes)

    document = await knowledge_repo.create_document(
        session,
        document_id=uuid4().hex,
        tenant_id=tenant_id,
        knowledge_base_id=knowledge_base_id,
        title=upload.title,
        content=upload.content,
        content_type=upload.content_type,
        size_bytes=size_bytes,
        metadata_json={
            "fileName": upload.title,
            "fileSize": size_bytes,
            "fileType": upload.content_type,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        },
    )
    await session.commit()

    chunks = chunk_text(
        upload.content,
        chunk_size=settings.chunk_size_chars,
        chunk_overlap=settings.chunk_overlap_chars,
    )
    indexed = 0
    try:
        for chunk in chunks:
            embedding = await embedder.embed_strict(chunk.text)
            await vectors.upsert(
                vector_id(document.id, chunk.index),
                embedding,
                chunk.text,
                tenant_id,
                {
                    "document_id": document.id,
                    "knowledge_base_id": knowledge_base_id,
                    "title": upload.title,
                    "chunk_index": chunk.index,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
            indexed += 1
    except (EmbeddingUnavailable, VectorSearchUnavailable) as exc:
        logger.warning(
            "document_processing_failed tenant_id=%s document_id=%s indexed=%s reason=%s",
            tenant_id,
            document.id,
            indexed,
            exc.message,
        )
        document.status = STATUS_ERROR
        document.error_message = exc.message
        # Keep the count of vectors written so a later delete can remove them.
        document.chunk_count = indexed
        await session.commit()
        return document

    document.status = STATUS_ACTIVE
    document.chunk_count = indexed
    document.metadata_json = {**(document.metadata_json or {}), "processedAt": datetime.now(timezone.utc).isoformat()}
    await session.commit()
    await (quota or get_quota_service()).confirm(session, tenant_id, METRIC_DOCUMENTS)
    logger.info(
        "document_processed tenant_id=%s document_id=%s chunks=%s", tenant_id, document.id, indexed
    )
    return document


async def delete_document(
    session: AsyncSession, tenant_id: str, document_id: str, vectors: VectorSearchClient
) -> bool:
    document = await knowledge_repo.get_document(session, tenant_id, document_id)
    if document is None:
        return False
    ids = [vector_id(document.id, index) for index in range(document.chunk_count)]
    # Remove vectors first; a row without vectors is harmless, vectors without a row are not.
    await vectors.delete(ids, tenant_id)
    await knowledge_repo.delete_document(session, tenant_id, document_id)
    await session.commit()
    logger.info("document_deleted tenant_id=%s document_id=%s vectors=%s", tenant_id, document_id, len(ids))
    return True
