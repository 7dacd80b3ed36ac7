from __future__ import annotations

import logging
import time
from typing import Protocol

from solveur.core.errors import EmbeddingUnavailable
from solveur.services.telemetry import increment_counter, record_external_call


logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    name: str

    async def embed(self, text: str) -> list[float]:
        ...


class EmbeddingClient:
    """Wrap an embedding provider so failures surface as ``None``, never as exceptions.

    The chat pipeline treats a missing vector as "no retrieval" and carries on;
    the failure is still logged and counted as ``embedding_unavailable``.
    """

    def __init__(self, provider: EmbeddingProvider) -> None:
        self._provider = provider

    @property
    def provider_name(self) -> str:
        return getattr(self._provider, "name", type(self._provider).__name__)

    async def embed(self, text: str) -> list[float] | None:
        start = time.monotonic()
        try:
            vector = await self._provider.embed(text)
        except Exception as exc:
            # Any provider fault degrades retrieval; the chat request carries on without context.
            self._record(start, success=False)
            increment_counter("embedding_unavailable")
            reason = exc.message if isinstance(exc, EmbeddingUnavailable) else type(exc).__name__
            logger.warning("embedding_unavailable provider=%s reason=%s", self.provider_name, reason)
            return None
        self._record(start, success=True)
        return vector

    async def embed_strict(self, text: str) -> list[float]:
        # Ingestion must know about failures to mark documents as errored.
        start = time.monotonic()
        try:
            vector = await self._provider.embed(text)
        except EmbeddingUnavailable:
            self._record(start, success=False)
            increment_counter("embedding_unavailable")
            raise
        except Exception as exc:
            self._record(start, success=False)
            increment_counter("embedding_unavailable")
            raise EmbeddingUnavailable(f"embedding provider failed: {type(exc).__name__}") from exc
        self._record(start, success=True)
        return vector

    def _record(self, start: float, *, success: bool) -> None:
        record_external_call(
            integration=f"embeddings.{self.provider_name}",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=success,
        )
