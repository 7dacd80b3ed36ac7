from __future__ import annotations

from typing import Any

import httpx

from solveur.core.config import Settings, get_settings
from solveur.core.errors import ProviderConfigError, VectorSearchUnavailable
from solveur.providers.vectors.base import VectorMatch


_API_VERSION = "2024-07"


def tenant_filter(tenant_id: str) -> dict[str, Any]:
    # Every query carries this filter; it is what keeps tenants out of each other's documents.
    return {"tenant_id": {"$eq": tenant_id}}


class PineconeVectorIndex:
    """Pinecone data-plane client over REST.

    Vectors carry ``text`` and ``tenant_id`` in their metadata so a query can be
    filtered server-side and answered without a second lookup.
    """

    name = "pinecone"

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        if not self._settings.pinecone_api_key or not self._settings.pinecone_host:
            raise ProviderConfigError("PINECONE_API_KEY and PINECONE_HOST are required for Pinecone")
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(timeout=self._settings.pinecone_timeout_ms / 1000.0)
        return self._client

    def _url(self, path: str) -> str:
        host = self._settings.pinecone_host or ""
        if not host.startswith("http"):
            host = f"https://{host}"
        return f"{host.rstrip('/')}{path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Api-Key": self._settings.pinecone_api_key or "",
            "X-Pinecone-API-Version": _API_VERSION,
            "Content-Type": "application/json",
        }

    def _with_namespace(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self._settings.pinecone_namespace:
            payload["namespace"] = self._settings.pinecone_namespace
        return payload

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._get_client().post(self._url(path), json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise VectorSearchUnavailable(f"Pinecone request failed: {type(exc).__name__}") from exc
        if response.status_code in {401, 403}:
            raise VectorSearchUnavailable("Pinecone auth error: check PINECONE_API_KEY.")
        if response.status_code >= 400:
            raise VectorSearchUnavailable(f"Pinecone error: {response.status_code}")
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise VectorSearchUnavailable("Pinecone response was malformed") from exc

    async def upsert(
        self, id: str, vector: list[float], text: str, tenant_id: str, metadata: dict[str, Any]
    ) -> None:
        # Only scalar metadata is forwarded to Pinecone.
        clean = {
            key: value
            for key, value in metadata.items()
            if isinstance(value, (str, int, float, bool))
        }
        clean.update({"text": text, "tenant_id": tenant_id})
        payload = self._with_namespace({"vectors": [{"id": id, "values": vector, "metadata": clean}]})
        await self._post("/vectors/upsert", payload)

    async def query(self, vector: list[float], tenant_id: str, top_k: int) -> list[VectorMatch]:
        payload = self._with_namespace(
            {
                "vector": vector,
                "topK": top_k,
                "filter": tenant_filter(tenant_id),
                "includeMetadata": True,
                "includeValues": False,
            }
        )
        body = await self._post("/query", payload)
        if not isinstance(body, dict):
            raise VectorSearchUnavailable("Pinecone query response was malformed")
        raw_matches = body.get("matches") or []
        if not isinstance(raw_matches, list):
            raise VectorSearchUnavailable("Pinecone query response was malformed")
        matches: list[VectorMatch] = []
        for item in raw_matches:
            if not isinstance(item, dict):
                continue
            metadata = item.get("metadata") or {}
            if not isinstance(metadata, dict):
                continue
            # Rows tagged for another tenant are dropped even if the server ignored the filter.
            if metadata.get("tenant_id") != tenant_id:
                continue
            text = metadata.get("text") or metadata.get("content")
            if not text:
                continue
            try:
                score = float(item.get("score") or 0.0)
            except (TypeError, ValueError):
                continue
            matches.append(VectorMatch(id=str(item.get("id")), text=str(text), score=score, metadata=metadata))
        return matches

    async def delete(self, ids: list[str], tenant_id: str) -> None:
        # Ids are derived from tenant-checked document ids, so deleting by id stays tenant scoped.
        _ = tenant_id
        await self._post("/vectors/delete", self._with_namespace({"ids": list(ids)}))
