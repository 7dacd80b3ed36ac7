from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.config import get_settings
from solveur.core.errors import CompletionFailed, MessageRequired, PersistenceFailed
from solveur.domain.plans import METRIC_API_CALLS
from solveur.domain.state import ChatState, PipelineStage
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.llm.base import CompletionProvider
from solveur.providers.vectors.base import VectorSearchClient
from solveur.services import conversations
from solveur.services.personality import compile_prompt, get_active_config
from solveur.services.quota import QuotaService, get_quota_service
from solveur.services.telemetry import increment_counter
from solveur.services.tenancy import TenantSignal, resolve_tenant


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatCommand:
    signal: TenantSignal
    message: str
    conversation_id: str | None = None
    user_id: str | None = None
    request_id: str | None = None


@dataclass(frozen=True)
class UsageInfo:
    current: int
    limit: int


@dataclass(frozen=True)
class ChatResult:
    response: str
    conversation_id: str
    usage: UsageInfo
    # False when the answer was produced without retrieved context.
    grounded: bool
    persisted: bool


class ChatPipeline:
    """One chat turn: tenant, quota, retrieval, prompt, completion, persistence.

    Failure policy per stage:

    * tenant missing/inactive and quota exceeded stop the run before anything
      is written;
    * embedding and vector search failures degrade to the neutral placeholder
      context and the run continues;
    * a completion failure stops the run with no messages stored and no quota
      charged;
    * a persistence failure after a successful completion is logged, the quota
      commit is still attempted in a fresh transaction, and the answer is
      returned anyway.
    """

    def __init__(
        self,
        *,
        embedder: EmbeddingClient,
        vectors: VectorSearchClient,
        completer: CompletionProvider,
        quota: QuotaService | None = None,
        top_k: int | None = None,
        context_placeholder: str | None = None,
        compiler: Callable[..., str] = compile_prompt,
    ) -> None:
        settings = get_settings()
        self._embedder = embedder
        self._vectors = vectors
        self._completer = completer
        self._quota = quota or get_quota_service()
        self._top_k = top_k or settings.retrieval_top_k
        self._placeholder = context_placeholder or settings.context_placeholder
        self._compile = compiler

    async def run(self, session: AsyncSession, command: ChatCommand) -> ChatResult:
        message = (command.message or "").strip()
        if not message:
            raise MessageRequired()

        started = time.monotonic()
        state: ChatState = {
            "request_id": command.request_id,
            "tenant_id": None,
            "tenant_name": None,
            "conversation_id": uuid4().hex,
            "user_message": message,
            "stage": "RESOLVE_TENANT",
            "query_vector": None,
            "retrieved": [],
            "context": self._placeholder,
            "grounded": False,
            "system_prompt": None,
            "answer": None,
            "persisted": False,
        }

        tenant = await resolve_tenant(session, command.signal)
        # Plain values only past this point; a rollback expires ORM instances.
        tenant_id, tenant_name = tenant.id, tenant.name
        state["tenant_id"] = tenant_id
        state["tenant_name"] = tenant_name

        self._enter(state, "CHECK_QUOTA")
        decision = await self._quota.enforce(session, tenant_id, METRIC_API_CALLS, plan=tenant.plan)

        self._enter(state, "EMBED_QUERY")
        state["query_vector"] = await self._embedder.embed(message)

        self._enter(state, "SEARCH_CONTEXT")
        if state["query_vector"] is not None:
            state["retrieved"] = await self._vectors.search(state["query_vector"], tenant_id, self._top_k)
        else:
            logger.info("vector_search_skipped tenant_id=%s reason=no_embedding", tenant_id)
        if state["retrieved"]:
            state["context"] = "\n\n".join(state["retrieved"])
            state["grounded"] = True
        else:
            increment_counter("chat_ungrounded")

        self._enter(state, "COMPILE_PROMPT")
        personality = await get_active_config(session, tenant_id)
        state["system_prompt"] = self._compile(personality, tenant_name, message, state["context"])

        self._enter(state, "GENERATE_COMPLETION")
        try:
            answer = await self._completer.complete(state["system_prompt"], message)
        except CompletionFailed:
            increment_counter("completion_failed")
            raise
        if not answer or not answer.strip():
            increment_counter("completion_failed")
            raise CompletionFailed(reason="empty_completion")
        state["answer"] = answer

        self._enter(state, "PERSIST_MESSAGES")
        conversation_id = await self._persist(session, command, state, answer)

        self._enter(state, "COMMIT_QUOTA")
        current = await self._commit_quota(session, tenant_id, decision.current)

        self._enter(state, "RESPOND")
        logger.info(
            "chat_completed tenant_id=%s conversation_id=%s grounded=%s persisted=%s latency_ms=%.1f",
            tenant_id,
            conversation_id,
            state["grounded"],
            state["persisted"],
            (time.monotonic() - started) * 1000.0,
        )
        return ChatResult(
            response=answer,
            conversation_id=conversation_id,
            usage=UsageInfo(current=current, limit=decision.limit),
            grounded=state["grounded"],
            persisted=state["persisted"],
        )

    def _enter(self, state: ChatState, stage: PipelineStage) -> None:
        state["stage"] = stage
        logger.debug("chat_stage stage=%s tenant_id=%s", stage, state["tenant_id"])

    async def _persist(self, session: AsyncSession, command: ChatCommand, state: ChatState, answer: str) -> str:
        conversation_id: str | None = None
        try:
            conversation = await conversations.get_or_create(
                session,
                conversation_id=command.conversation_id,
                tenant_id=state["tenant_id"],
                user_id=command.user_id,
                title=conversations.title_from_message(state["user_message"]),
                new_id=state["conversation_id"],
            )
            conversation_id = conversation.id
            await conversations.append_pair(
                session,
                conversation,
                state["user_message"],
                answer,
                metadata={"grounded": state["grounded"], "sources": len(state["retrieved"])},
            )
            await session.commit()
            state["persisted"] = True
        except (SQLAlchemyError, PersistenceFailed) as exc:
            await session.rollback()
            failure = exc if isinstance(exc, PersistenceFailed) else PersistenceFailed()
            failure.details.setdefault("stage", "PERSIST_MESSAGES")
            increment_counter("persistence_failed")
            logger.error(
                "persistence_failed tenant_id=%s conversation_id=%s code=%s",
                state["tenant_id"],
                state["conversation_id"],
                failure.code,
                exc_info=exc,
            )
        return conversation_id or state["conversation_id"]

    async def _commit_quota(self, session: AsyncSession, tenant_id: str, previous: int) -> int:
        # Runs in its own transaction so a failed message write does not undo the charge.
        try:
            return await self._quota.confirm(session, tenant_id, METRIC_API_CALLS)
        except SQLAlchemyError as exc:
            await session.rollback()
            increment_counter("quota_commit_failed")
            logger.error("quota_commit_failed tenant_id=%s", tenant_id, exc_info=exc)
            return previous
