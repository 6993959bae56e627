"""
Executor Registry - ordered, first-match dispatch.

Executors are kept as an explicit ordered list. dispatch() walks it in
registration order and returns the first executor whose can_execute() accepts
the context. Nothing is sorted or prioritised, so registration order is part
of the contract: register specific executors before generic fallbacks.

    registry = ExecutorRegistry()
    registry.register(LLMAgentExecutor(provider))   # agents with a model
    registry.register(BasicNodesExecutor())         # everything else
"""

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from canvasflow.errors import NoExecutorFoundError
from canvasflow.executors.base import ExecutionContext, ExecutionResult, Executor

logger = logging.getLogger(__name__)

Predicate = Callable[[ExecutionContext], bool]
Handler = Callable[
    [ExecutionContext],
    ExecutionResult | dict[str, Any] | Awaitable[ExecutionResult | dict[str, Any]],
]


class HandlerExecutor:
    """An executor assembled from a (predicate, handler) pair."""

    def __init__(self, name: str, predicate: Predicate, handler: Handler):
        self.name = name
        self._predicate = predicate
        self._handler = handler

    def can_execute(self, context: ExecutionContext) -> bool:
        return bool(self._predicate(context))

    async def execute(self, context: ExecutionContext) -> ExecutionResult:
        result = self._handler(context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ExecutionResult):
            return result
        return ExecutionResult.ok(context.node_id, dict(result or {}))


class ExecutorRegistry:
    """Holds executor backends and selects one per node context."""

    def __init__(self, executors: list[Executor] | None = None):
        self._executors: list[Executor] = []
        for executor in executors or []:
            self.register(executor)

    @property
    def executors(self) -> tuple[Executor, ...]:
        """Registered executors in dispatch order."""
        return tuple(self._executors)

    def names(self) -> list[str]:
        return [executor.name for executor in self._executors]

    def register(self, executor: Executor) -> None:
        """Append an executor; it is consulted after every earlier registration."""
        if any(existing.name == executor.name for existing in self._executors):
            raise ValueError(f"Executor '{executor.name}' is already registered")
        self._executors.append(executor)
        logger.debug(f"Registered executor: {executor.name}")

    def register_handler(self, name: str, predicate: Predicate, handler: Handler) -> None:
        """Register a plain (predicate, handler) pair as an executor."""
        self.register(HandlerExecutor(name, predicate, handler))

    def unregister(self, name: str) -> bool:
        """Remove an executor by name. Returns False if it was not registered."""
        for i, executor in enumerate(self._executors):
            if executor.name == name:
                del self._executors[i]
                logger.debug(f"Unregistered executor: {name}")
                return True
        return False

    def get(self, name: str) -> Executor | None:
        for executor in self._executors:
            if executor.name == name:
                return executor
        return None

    def dispatch(self, context: ExecutionContext) -> Executor:
        """
        Return the first executor that can handle the context.

        Raises:
            NoExecutorFoundError: no registered executor accepted the context
        """
        for executor in self._executors:
            if executor.can_execute(context):
                return executor
        raise NoExecutorFoundError(context.node_id, context.component, context.framework)

    async def execute(self, context: ExecutionContext) -> ExecutionResult:
        """
        Dispatch and run a node, turning executor failures into error results.

        NoExecutorFoundError is raised rather than converted: the flow executor
        records it against the node and aborts the run.
        """
        executor = self.dispatch(context)
        logger.info(
            f"Executing node {context.node_id} ({context.component}) with {executor.name}",
            extra={"event": "dispatch", "executor": executor.name},
        )

        start = time.perf_counter()
        try:
            result = await executor.execute(context)
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.exception(f"Executor {executor.name} raised on node {context.node_id}")
            return ExecutionResult.failed(
                context.node_id,
                str(e) or type(e).__name__,
                logs=[f"Error executing node: {e}"],
                execution_time_ms=elapsed,
            )

        elapsed = int((time.perf_counter() - start) * 1000)
        if result.status == "error" and not result.error:
            result = replace(result, error="Executor reported an error without a message")
        return replace(result, node_id=context.node_id, execution_time_ms=elapsed)
