from __future__ import annotations

import logging

from solveur.core.config import Settings, get_settings
from solveur.core.errors import ProviderConfigError
from solveur.providers.vectors.base import VectorIndex, VectorSearchClient
from solveur.providers.vectors.memory import InMemoryVectorIndex
from solveur.providers.vectors.pgvector import PgVectorIndex
from solveur.providers.vectors.pinecone import PineconeVectorIndex


logger = logging.getLogger(__name__)

_memory_index: InMemoryVectorIndex | None = None


def get_memory_index() -> InMemoryVectorIndex:
    # Ingestion and chat must see the same in-process index.
    global _memory_index
    if _memory_index is None:
        _memory_index = InMemoryVectorIndex()
    return _memory_index


def reset_memory_index() -> None:
    global _memory_index
    _memory_index = None


def get_vector_client(settings: Settings | None = None) -> VectorSearchClient:
    settings = settings or get_settings()
    backend = (settings.vector_provider or "pinecone").lower()
    index: VectorIndex | None
    if backend == "memory":
        index = get_memory_index()
    elif backend == "pgvector":
        index = PgVectorIndex()
    elif backend == "pinecone":
        try:
            index = PineconeVectorIndex(settings)
        except ProviderConfigError as exc:
            # An unconfigured index degrades chat to ungrounded answers instead of failing startup.
            logger.warning("vector_backend_unconfigured backend=pinecone reason=%s", exc.message)
            index = None
    elif backend in {"", "none"}:
        index = None
    else:
        raise ProviderConfigError(f"unknown vector provider: {backend}")
    return VectorSearchClient(index, top_k_max=settings.retrieval_top_k_max)
