from __future__ import annotations

from typing import Literal, Optional, TypedDict


PipelineStage = Literal[
    "RESOLVE_TENANT",
    "CHECK_QUOTA",
    "EMBED_QUERY",
    "SEARCH_CONTEXT",
    "COMPILE_PROMPT",
    "GENERATE_COMPLETION",
    "PERSIST_MESSAGES",
    "COMMIT_QUOTA",
    "RESPOND",
]


class ChatState(TypedDict):
    request_id: Optional[str]
    tenant_id: Optional[str]
    tenant_name: Optional[str]
    conversation_id: str
    user_message: str
    stage: PipelineStage
    query_vector: Optional[list[float]]
    retrieved: list[str]
    context: str
    grounded: bool
    system_prompt: Optional[str]
    answer: Optional[str]
    persisted: bool
