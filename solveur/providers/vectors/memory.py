from __future__ import annotations

import math
from typing import Any

from solveur.providers.vectors.base import VectorMatch


def cosine_similarity(left: list[float], right: list[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return dot / (left_norm * right_norm)


class InMemoryVectorIndex:
    """Process-local index for development and tests; not shared across workers."""

    name = "memory"

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}

    async def upsert(
        self, id: str, vector: list[float], text: str, tenant_id: str, metadata: dict[str, Any]
    ) -> None:
        self._rows[id] = {
            "vector": list(vector),
            "text": text,
            "metadata": {**metadata, "tenant_id": tenant_id},
        }

    async def query(self, vector: list[float], tenant_id: str, top_k: int) -> list[VectorMatch]:
        # Filter before scoring so another tenant's rows never enter the candidate set.
        candidates = [
            (row_id, row)
            for row_id, row in self._rows.items()
            if row["metadata"].get("tenant_id") == tenant_id
        ]
        scored = [
            VectorMatch(
                id=row_id,
                text=row["text"],
                score=cosine_similarity(vector, row["vector"]),
                metadata=dict(row["metadata"]),
            )
            for row_id, row in candidates
        ]
        # Secondary ordering keeps tie-breaking deterministic.
        scored.sort(key=lambda match: (-match.score, match.id))
        return scored[:top_k]

    async def delete(self, ids: list[str], tenant_id: str) -> None:
        for row_id in ids:
            row = self._rows.get(row_id)
            if row is not None and row["metadata"].get("tenant_id") == tenant_id:
                del self._rows[row_id]

    def __len__(self) -> int:
        return len(self._rows)
