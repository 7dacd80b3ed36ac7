from __future__ import annotations

import httpx

from solveur.core.config import EMBED_DIM, Settings, get_settings
from solveur.core.errors import EmbeddingUnavailable


class OpenAIEmbeddingProvider:
    name = "openai"

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per provider for connection pooling.
        self._client = httpx.AsyncClient(timeout=self._settings.openai_timeout_ms / 1000.0)
        return self._client

    async def embed(self, text: str) -> list[float]:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise EmbeddingUnavailable("OPENAI_API_KEY is not configured")

        payload = {"model": self._settings.openai_embedding_model, "input": text}
        headers = {"Authorization": f"Bearer {api_key}"}
        url = f"{self._settings.openai_base_url.rstrip('/')}/embeddings"
        # One attempt only; a slow provider degrades the answer instead of stalling the request.
        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailable(f"OpenAI embeddings request failed: {type(exc).__name__}") from exc

        if response.status_code in {401, 403}:
            raise EmbeddingUnavailable("OpenAI embeddings auth error: check OPENAI_API_KEY.")
        if response.status_code >= 400:
            raise EmbeddingUnavailable(f"OpenAI embeddings error: {response.status_code}")

        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingUnavailable("OpenAI embeddings response was malformed") from exc
        if not isinstance(vector, list):
            raise EmbeddingUnavailable("OpenAI embeddings response was malformed")
        if len(vector) != EMBED_DIM:
            raise EmbeddingUnavailable(f"embedding dimension mismatch: {len(vector)} != {EMBED_DIM}")
        try:
            return [float(v) for v in vector]
        except (TypeError, ValueError) as exc:
            raise EmbeddingUnavailable("OpenAI embeddings response was malformed") from exc
