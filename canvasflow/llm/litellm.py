"""LiteLLM provider - one interface over OpenAI, Anthropic, Ollama and friends."""

import logging
from typing import Any

import litellm

from canvasflow.config import LLMConfig
from canvasflow.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by litellm.acompletion.

    Example:
        provider = LiteLLMProvider(model="openai/gpt-4o-mini")
        response = await provider.acomplete([{"role": "user", "content": "hi"}])
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        **extra_kwargs: Any,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.extra_kwargs = extra_kwargs

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LiteLLMProvider":
        return cls(model=config.model, api_key=config.api_key, api_base=config.api_base)

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": full_messages,
            "max_tokens": max_tokens,
            **self.extra_kwargs,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        logger.debug(f"LiteLLM request to {self.model} ({len(full_messages)} messages)")
        response = await litellm.acompletion(**kwargs)

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", None) or self.model,
            input_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
            output_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )
