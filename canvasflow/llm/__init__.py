"""LLM provider abstraction."""

from canvasflow.llm.mock import MockLLMProvider
from canvasflow.llm.provider import LLMProvider, LLMResponse

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "MockLLMProvider",
]
