from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import (
    Principal,
    get_completion_provider,
    get_db,
    get_embedding_client,
    get_principal,
    get_quota,
    get_tenant_signal,
    get_vector_client,
)
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, get_request_id, success_response
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.llm.base import CompletionProvider
from solveur.providers.vectors.base import VectorSearchClient
from solveur.services import conversations
from solveur.services.quota import QuotaService
from solveur.services.rag import ChatCommand, ChatPipeline
from solveur.services.tenancy import TenantSignal, resolve_tenant


router = APIRouter(tags=["chat"], responses=DEFAULT_ERROR_RESPONSES)


class ChatRequest(ApiModel):
    # Blank messages are rejected by the pipeline with MESSAGE_REQUIRED, not by schema validation.
    message: str | None = Field(default=None)
    conversation_id: str | None = Field(default=None)


class UsageResponse(ApiModel):
    current: int
    limit: int


class ChatResponse(ApiModel):
    response: str
    conversation_id: str
    usage: UsageResponse


class MessageResponse(ApiModel):
    id: str
    role: str
    content: str
    sequence: int
    created_at: str


class ConversationResponse(ApiModel):
    id: str
    title: str | None
    status: str
    created_at: str


@router.post("/chat", response_model=SuccessEnvelope[ChatResponse] | ChatResponse)
async def chat(
    request: Request,
    payload: ChatRequest,
    signal: TenantSignal = Depends(get_tenant_signal),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    embedder: EmbeddingClient = Depends(get_embedding_client),
    vectors: VectorSearchClient = Depends(get_vector_client),
    completer: CompletionProvider = Depends(get_completion_provider),
    quota: QuotaService = Depends(get_quota),
) -> dict:
    pipeline = ChatPipeline(embedder=embedder, vectors=vectors, completer=completer, quota=quota)
    result = await pipeline.run(
        db,
        ChatCommand(
            signal=signal,
            message=payload.message or "",
            conversation_id=payload.conversation_id,
            user_id=principal.user_id,
            request_id=get_request_id(request),
        ),
    )
    data = ChatResponse(
        response=result.response,
        conversation_id=result.conversation_id,
        usage=UsageResponse(current=result.usage.current, limit=result.usage.limit),
    )
    return success_response(request=request, data=data)


@router.get(
    "/conversations",
    response_model=SuccessEnvelope[list[ConversationResponse]] | list[ConversationResponse],
)
async def list_conversations(
    request: Request,
    signal: TenantSignal = Depends(get_tenant_signal),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    tenant = await resolve_tenant(db, signal)
    items = await conversations.list_conversations(db, tenant.id, user_id=principal.user_id)
    data = [
        ConversationResponse(id=c.id, title=c.title, status=c.status, created_at=c.created_at.isoformat())
        for c in items
    ]
    return success_response(request=request, data=data)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=SuccessEnvelope[list[MessageResponse]] | list[MessageResponse],
)
async def list_messages(
    conversation_id: str,
    request: Request,
    signal: TenantSignal = Depends(get_tenant_signal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    tenant = await resolve_tenant(db, signal)
    # Foreign or unknown conversations simply have no messages for this tenant.
    items = await conversations.list_messages(db, tenant.id, conversation_id)
    data = [
        MessageResponse(
            id=m.id, role=m.role, content=m.content, sequence=m.sequence, created_at=m.created_at.isoformat()
        )
        for m in items
    ]
    return success_response(request=request, data=data)
