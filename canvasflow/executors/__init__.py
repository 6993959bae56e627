"""Executor backends and the registry that dispatches to them."""

from canvasflow.config import LLMConfig
from canvasflow.executors.base import ExecutionContext, ExecutionResult, Executor
from canvasflow.executors.basic import BasicNodesExecutor
from canvasflow.executors.functions import FunctionExecutor
from canvasflow.executors.llm_agent import LLMAgentExecutor
from canvasflow.executors.registry import ExecutorRegistry, HandlerExecutor
from canvasflow.llm.provider import LLMProvider


def create_default_registry(
    functions: FunctionExecutor | None = None,
    llm: LLMProvider | None = None,
    llm_config: LLMConfig | None = None,
) -> ExecutorRegistry:
    """
    Registry with the standard executors in their required order.

    Custom functions first, then the LLM agent (when a provider is given),
    and the basic node kinds last as the generic fallback.
    """
    registry = ExecutorRegistry()
    if functions is not None:
        registry.register(functions)
    if llm is not None:
        registry.register(LLMAgentExecutor(llm, config=llm_config))
    registry.register(BasicNodesExecutor())
    return registry


__all__ = [
    "BasicNodesExecutor",
    "ExecutionContext",
    "ExecutionResult",
    "Executor",
    "ExecutorRegistry",
    "FunctionExecutor",
    "HandlerExecutor",
    "LLMAgentExecutor",
    "create_default_registry",
]
