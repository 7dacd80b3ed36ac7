from __future__ import annotations


class FakeCompletionProvider:
    name = "fake"

    def __init__(self, response: str = "This is a fake response.") -> None:
        # Deterministic response keeps tests stable without external calls.
        self._response = response
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt: str, user_message: str) -> str:
        # Record prompts so tests can assert on what reached the model.
        self.calls.append((system_prompt, user_message))
        return self._response
