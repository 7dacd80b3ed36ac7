from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Protocol

from solveur.core.errors import VectorSearchUnavailable
from solveur.services.telemetry import increment_counter, record_external_call


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorMatch:
    id: str
    text: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorIndex(Protocol):
    name: str

    async def upsert(
        self, id: str, vector: list[float], text: str, tenant_id: str, metadata: dict[str, Any]
    ) -> None:
        ...

    async def query(self, vector: list[float], tenant_id: str, top_k: int) -> list[VectorMatch]:
        ...

    async def delete(self, ids: list[str], tenant_id: str) -> None:
        ...


class VectorSearchClient:
    """Tenant-scoped similarity search over a vector index.

    ``search`` never raises: an unconfigured or failing backend yields an empty
    result so the chat pipeline can fall back to its neutral context. Index
    writes go through ``upsert``/``delete`` and do raise, since ingestion must
    record the failure on the document.
    """

    def __init__(self, index: VectorIndex | None, *, top_k_max: int = 20) -> None:
        self._index = index
        self._top_k_max = top_k_max

    @property
    def configured(self) -> bool:
        return self._index is not None

    @property
    def backend_name(self) -> str:
        if self._index is None:
            return "none"
        return getattr(self._index, "name", type(self._index).__name__)

    async def search(self, vector: list[float], tenant_id: str, top_k: int) -> list[str]:
        matches = await self.search_matches(vector, tenant_id, top_k)
        return [match.text for match in matches]

    async def search_matches(self, vector: list[float], tenant_id: str, top_k: int) -> list[VectorMatch]:
        if not tenant_id:
            # A query without a tenant scope would read every tenant's documents.
            raise ValueError("tenant_id is required for vector search")
        if self._index is None:
            increment_counter("vector_search_unconfigured")
            logger.warning("vector_search_unavailable backend=none tenant_id=%s", tenant_id)
            return []
        # Clamp to a safe range to avoid unbounded provider calls.
        top_k = max(1, min(int(top_k), self._top_k_max))
        start = time.monotonic()
        try:
            matches = await self._index.query(vector, tenant_id, top_k)
        except Exception as exc:
            # A failed or malformed search degrades to "no context" rather than failing the chat.
            self._record(start, success=False)
            increment_counter("vector_search_unavailable")
            logger.warning(
                "vector_search_unavailable backend=%s tenant_id=%s reason=%s",
                self.backend_name,
                tenant_id,
                exc.message if isinstance(exc, VectorSearchUnavailable) else type(exc).__name__,
            )
            return []
        self._record(start, success=True)
        # Providers report descending scores; re-sort so the contract never depends on them.
        return sorted(matches, key=lambda match: match.score, reverse=True)

    async def upsert(
        self, id: str, vector: list[float], text: str, tenant_id: str, metadata: dict[str, Any] | None = None
    ) -> None:
        if self._index is None:
            raise VectorSearchUnavailable("vector index is not configured")
        if not tenant_id:
            raise ValueError("tenant_id is required for vector upsert")
        await self._index.upsert(id, vector, text, tenant_id, dict(metadata or {}))

    async def delete(self, ids: list[str], tenant_id: str) -> None:
        if self._index is None or not ids:
            return
        await self._index.delete(ids, tenant_id)

    def _record(self, start: float, *, success: bool) -> None:
        record_external_call(
            integration=f"vectors.{self.backend_name}",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=success,
        )
