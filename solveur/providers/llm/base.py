from __future__ import annotations

from typing import Protocol


class CompletionProvider(Protocol):
    name: str

    async def complete(self, system_prompt: str, user_message: str) -> str:
        ...
