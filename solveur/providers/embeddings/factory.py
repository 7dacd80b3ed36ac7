from __future__ import annotations

from solveur.core.config import Settings, get_settings
from solveur.core.errors import ProviderConfigError
from solveur.providers.embeddings.base import EmbeddingClient
from solveur.providers.embeddings.fake import FakeEmbeddingProvider
from solveur.providers.embeddings.openai import OpenAIEmbeddingProvider


def get_embedding_client(settings: Settings | None = None) -> EmbeddingClient:
    settings = settings or get_settings()
    provider = (settings.embedding_provider or "openai").lower()

    if provider == "fake":
        return EmbeddingClient(FakeEmbeddingProvider())
    if provider == "openai":
        return EmbeddingClient(OpenAIEmbeddingProvider(settings))
    raise ProviderConfigError(f"unknown embedding provider: {provider}")
