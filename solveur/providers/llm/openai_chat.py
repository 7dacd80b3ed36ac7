from __future__ import annotations

import logging
import time

import httpx

from solveur.core.config import Settings, get_settings
from solveur.core.errors import CompletionFailed
from solveur.services.telemetry import record_external_call


logger = logging.getLogger(__name__)


class OpenAIChatProvider:
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

    async def complete(self, system_prompt: str, user_message: str) -> str:
        api_key = self._settings.openai_api_key
        if not api_key:
            logger.error("completion_failed provider=openai reason=missing_api_key")
            raise CompletionFailed(reason="missing_api_key")

        payload = {
            "model": self._settings.openai_chat_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": self._settings.openai_temperature,
            "max_tokens": self._settings.openai_max_tokens,
        }
        headers = {"Authorization": f"Bearer {api_key}"}
        url = f"{self._settings.openai_base_url.rstrip('/')}/chat/completions"

        start = time.monotonic()
        try:
            response = await self._get_client().post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            self._record(start, success=False)
            logger.warning("completion_failed provider=openai reason=%s", type(exc).__name__)
            raise CompletionFailed(reason="transport") from exc

        if response.status_code >= 400:
            self._record(start, success=False)
            logger.warning("completion_failed provider=openai status=%s", response.status_code)
            raise CompletionFailed(reason="http_error", status=response.status_code)

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            self._record(start, success=False)
            raise CompletionFailed(reason="malformed_response") from exc

        self._record(start, success=True)
        # An empty completion is as useless to the caller as a failed one.
        if not content or not str(content).strip():
            raise CompletionFailed(reason="empty_completion")
        return str(content)

    def _record(self, start: float, *, success: bool) -> None:
        record_external_call(
            integration="llm.openai",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=success,
        )
