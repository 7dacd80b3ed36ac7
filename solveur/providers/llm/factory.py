from __future__ import annotations

from solveur.core.config import Settings, get_settings
from solveur.core.errors import ProviderConfigError
from solveur.providers.llm.base import CompletionProvider
from solveur.providers.llm.fake import FakeCompletionProvider
from solveur.providers.llm.openai_chat import OpenAIChatProvider


def get_completion_provider(settings: Settings | None = None) -> CompletionProvider:
    settings = settings or get_settings()
    provider = (settings.llm_provider or "openai").lower()

    if provider == "fake":
        return FakeCompletionProvider()
    if provider == "openai":
        return OpenAIChatProvider(settings)
    raise ProviderConfigError(f"unknown llm provider: {provider}")
