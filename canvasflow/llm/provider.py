"""
Model access for agent nodes.

Agent executors only need a single-turn "prompt in, text out" call, so the
provider surface is one async method plus a helper that wraps a prompt into
a chat message list.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

Message = dict[str, Any]


@dataclass
class LLMResponse:
    """Text returned by a model, with token accounting."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None

    @property
    def usage(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


class LLMProvider(ABC):
    """
    Backend that answers chat messages.

    Subclasses implement acomplete() and raise on provider failures; the
    executor registry records those as node errors.
    """

    model: str = ""

    @abstractmethod
    async def acomplete(
        self,
        messages: list[Message],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        """
        Answer a conversation.

        Args:
            messages: [{"role": "user"|"assistant", "content": str}, ...]
            system: System prompt, empty for none
            max_tokens: Upper bound on generated tokens
            temperature: None keeps the backend's default
        """

    async def ask(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Single user turn."""
        return await self.acomplete(
            [{"role": "user", "content": prompt}],
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )
