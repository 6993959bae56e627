"""Deterministic LLM provider for demos and tests."""

from typing import Any

from canvasflow.llm.provider import LLMProvider, LLMResponse


class MockLLMProvider(LLMProvider):
    """Answers with a canned response, or echoes the last user message."""

    def __init__(self, response: str | None = None, model: str = "mock"):
        self.model = model
        self.response = response
        self.calls: list[dict[str, Any]] = []

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "system": system, "max_tokens": max_tokens})
        if self.response is not None:
            content = self.response
        else:
            last_user = next(
                (m.get("content", "") for m in reversed(messages) if m.get("role") == "user"),
                "",
            )
            content = f"echo: {last_user}"
        return LLMResponse(content=content, model=self.model, stop_reason="stop")
