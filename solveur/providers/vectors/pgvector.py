from __future__ import annotations

from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.config import EMBED_DIM
from solveur.core.errors import VectorSearchUnavailable
from solveur.domain.models import VectorChunk
from solveur.persistence.db import SessionLocal
from solveur.persistence.guards import tenant_predicate
from solveur.providers.vectors.base import VectorMatch


def build_query(vector: list[float], tenant_id: str, top_k: int):
    # Use cosine distance from pgvector; lower is more similar.
    distance_expr = VectorChunk.embedding.cosine_distance(vector)
    return (
        select(VectorChunk, distance_expr.label("distance"))
        .where(tenant_predicate(VectorChunk, tenant_id))
        # Secondary ordering keeps tie-breaking deterministic.
        .order_by(distance_expr.asc(), VectorChunk.id.asc())
        .limit(top_k)
    )


class PgVectorIndex:
    """Local vector index in the application database (pgvector)."""

    name = "pgvector"

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    async def upsert(
        self, id: str, vector: list[float], text: str, tenant_id: str, metadata: dict[str, Any]
    ) -> None:
        if len(vector) != EMBED_DIM:
            raise VectorSearchUnavailable("embedding dimension mismatch")
        async with self._session_factory() as session:
            try:
                existing = await session.get(VectorChunk, id)
                if existing is not None and existing.tenant_id != tenant_id:
                    raise VectorSearchUnavailable("vector id belongs to another tenant")
                if existing is None:
                    session.add(
                        VectorChunk(
                            id=id,
                            tenant_id=tenant_id,
                            document_id=metadata.get("document_id"),
                            text=text,
                            embedding=vector,
                            metadata_json=metadata,
                        )
                    )
                else:
                    existing.text = text
                    existing.embedding = vector
                    existing.metadata_json = metadata
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise VectorSearchUnavailable("pgvector upsert failed") from exc

    async def query(self, vector: list[float], tenant_id: str, top_k: int) -> list[VectorMatch]:
        if len(vector) != EMBED_DIM:
            # Retrieval must fail fast if the embedding dimension doesn't match the schema.
            raise VectorSearchUnavailable("query embedding dimension mismatch")
        async with self._session_factory() as session:
            try:
                result = await session.execute(build_query(vector, tenant_id, top_k))
                rows = result.all()
            except SQLAlchemyError as exc:
                raise VectorSearchUnavailable("pgvector query failed") from exc
        matches: list[VectorMatch] = []
        for chunk, distance in rows:
            # Convert cosine distance to similarity and clamp to a sane [0, 1] range.
            score = max(0.0, min(1.0, 1.0 - float(distance)))
            matches.append(
                VectorMatch(id=chunk.id, text=chunk.text, score=score, metadata=chunk.metadata_json or {})
            )
        return matches

    async def delete(self, ids: list[str], tenant_id: str) -> None:
        async with self._session_factory() as session:
            try:
                await session.execute(
                    delete(VectorChunk).where(tenant_predicate(VectorChunk, tenant_id), VectorChunk.id.in_(ids))
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise VectorSearchUnavailable("pgvector delete failed") from exc
