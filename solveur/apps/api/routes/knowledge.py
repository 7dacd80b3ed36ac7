from __future__ import annotations

from dataclasses import replace
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import (
    Principal,
    get_current_tenant,
    get_db,
    get_embedding_client,
    get_quota,
    get_vector_client,
    require_role,
)
from solveur.apps.api.errors import http_error
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, success_response
from solveur.core.config import get_settings
from solveur.domain.models import Document, KnowledgeBase, Tenant
from solveur.persistence.repos import knowledge as knowledge_repo
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.vectors.base import VectorSearchClient
from solveur.services import ingestion
from solveur.services.quota import QuotaService


router = APIRouter(tags=["knowledge"], responses=DEFAULT_ERROR_RESPONSES)

# Plain-text formats only; binary extraction (PDF, DOCX) happens upstream of this API.
_TEXT_SUFFIXES = (".txt", ".md", ".markdown", ".csv", ".json", ".html", ".htm")


class KnowledgeBaseCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)


class KnowledgeBaseResponse(ApiModel):
    id: str
    name: str
    description: str | None
    is_active: bool
    document_count: int
    created_at: str


class DocumentResponse(ApiModel):
    id: str
    knowledge_base_id: str
    title: str
    content_type: str
    size_bytes: int
    status: str
    error_message: str | None
    chunk_count: int
    metadata: dict[str, Any] | None
    created_at: str


def _kb_response(kb: KnowledgeBase, document_count: int) -> KnowledgeBaseResponse:
    return KnowledgeBaseResponse(
        id=kb.id,
        name=kb.name,
        description=kb.description,
        is_active=kb.is_active,
        document_count=document_count,
        created_at=kb.created_at.isoformat(),
    )


def _document_response(document: Document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        knowledge_base_id=document.knowledge_base_id,
        title=document.title,
        content_type=document.content_type,
        size_bytes=document.size_bytes,
        status=document.status,
        error_message=document.error_message,
        chunk_count=document.chunk_count,
        metadata=document.metadata_json,
        created_at=document.created_at.isoformat(),
    )


async def _require_kb(db: AsyncSession, tenant_id: str, kb_id: str) -> KnowledgeBase:
    kb = await knowledge_repo.get_knowledge_base(db, tenant_id, kb_id)
    if kb is None:
        # 404 for foreign ids too, so other tenants' knowledge bases stay invisible.
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Knowledge base not found"})
    return kb


def _is_text_upload(upload: UploadFile) -> bool:
    content_type = (upload.content_type or "").lower()
    filename = (upload.filename or "").lower()
    return content_type.startswith("text/") or filename.endswith(_TEXT_SUFFIXES)


@router.get(
    "/knowledge-bases",
    response_model=SuccessEnvelope[list[KnowledgeBaseResponse]] | list[KnowledgeBaseResponse],
)
async def list_knowledge_bases(
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await knowledge_repo.list_knowledge_bases(db, tenant.id)
    return success_response(request=request, data=[_kb_response(kb, count) for kb, count in rows])


@router.post(
    "/knowledge-bases",
    status_code=201,
    response_model=SuccessEnvelope[KnowledgeBaseResponse] | KnowledgeBaseResponse,
)
async def create_knowledge_base(
    request: Request,
    payload: KnowledgeBaseCreateRequest,
    tenant: Tenant = Depends(get_current_tenant),
    _principal: Principal = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    kb = await ingestion.create_knowledge_base(db, tenant.id, payload.name, payload.description)
    return success_response(request=request, data=_kb_response(kb, 0))


@router.get(
    "/knowledge-bases/{kb_id}/documents",
    response_model=SuccessEnvelope[list[DocumentResponse]] | list[DocumentResponse],
)
async def list_documents(
    kb_id: str,
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await _require_kb(db, tenant.id, kb_id)
    documents = await knowledge_repo.list_documents(db, tenant.id, kb_id)
    return success_response(request=request, data=[_document_response(document) for document in documents])


@router.post(
    "/knowledge-bases/{kb_id}/documents",
    status_code=201,
    response_model=SuccessEnvelope[list[DocumentResponse]] | list[DocumentResponse],
)
async def upload_documents(
    kb_id: str,
    request: Request,
    files: list[UploadFile] = File(...),
    title: str | None = Form(default=None),
    tenant: Tenant = Depends(get_current_tenant),
    _principal: Principal = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
    embedder: EmbeddingClient = Depends(get_embedding_client),
    vectors: VectorSearchClient = Depends(get_vector_client),
    quota: QuotaService = Depends(get_quota),
) -> dict:
    await _require_kb(db, tenant.id, kb_id)
    if not files:
        raise http_error(400, "NO_FILES", "No files provided")
    # Validate the whole batch before storing anything so a bad file never leaves a partial upload.
    uploads = [await _read_text_upload(file) for file in files]
    if title and len(uploads) == 1:
        uploads[0] = replace(uploads[0], title=title.strip())
    await ingestion.check_document_allowance(
        db, tenant, sum(len(upload.content.encode("utf-8")) for upload in uploads), count=len(uploads)
    )

    documents = []
    for upload in uploads:
        # Each file gets its own status; an indexing failure marks that document only.
        documents.append(
            await ingestion.ingest_document(
                db,
                tenant=tenant,
                knowledge_base_id=kb_id,
                upload=upload,
                embedder=embedder,
                vectors=vectors,
                quota=quota,
            )
        )
    return success_response(request=request, data=[_document_response(document) for document in documents])


async def _read_text_upload(file: UploadFile) -> ingestion.UploadedText:
    if not _is_text_upload(file):
        raise http_error(
            400, "UNSUPPORTED_FILE_TYPE", "Only plain-text documents can be uploaded", filename=file.filename
        )
    max_bytes = get_settings().max_upload_bytes
    raw = await file.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise http_error(413, "PAYLOAD_TOO_LARGE", "Document exceeds the upload size limit", limit=max_bytes)
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise http_error(
            400, "UNSUPPORTED_FILE_TYPE", "Document must be UTF-8 text", filename=file.filename
        ) from exc
    if not content.strip():
        raise http_error(400, "EMPTY_DOCUMENT", "Document has no text content", filename=file.filename)
    return ingestion.UploadedText(
        title=(file.filename or "Untitled document").strip(),
        content=content,
        content_type=file.content_type or "text/plain",
    )


@router.delete("/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    _principal: Principal = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
    vectors: VectorSearchClient = Depends(get_vector_client),
) -> Response:
    deleted = await ingestion.delete_document(db, tenant.id, document_id, vectors)
    if not deleted:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Document not found"})
    return Response(status_code=204)
