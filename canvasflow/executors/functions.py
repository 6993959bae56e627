"""Python callables bound to node kinds."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from canvasflow.executors.base import ExecutionContext, ExecutionResult

logger = logging.getLogger(__name__)


@dataclass
class RegisteredFunction:
    """A callable and the node kind it serves."""

    kind: str
    func: Callable[..., Any]
    description: str = ""


class FunctionExecutor:
    """
    Runs user-supplied functions for custom node kinds.

    A function receives `inputs` and `parameters` as keyword arguments (only
    the ones its signature accepts) and returns a dict of outputs. Sync
    functions run in a worker thread so they cannot stall the event loop.

    Example:
        functions = FunctionExecutor()

        @functions.register("word_count")
        def word_count(inputs, parameters):
            return {"count": len(str(inputs.get("text", "")).split())}
    """

    name = "functions"

    def __init__(self) -> None:
        self._functions: dict[str, RegisteredFunction] = {}

    def register(
        self,
        kind: str,
        func: Callable[..., Any] | None = None,
        description: str = "",
    ) -> Any:
        """Register `func` for `kind`. Usable directly or as a decorator."""

        def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
            self._functions[kind] = RegisteredFunction(
                kind=kind,
                func=f,
                description=description or (f.__doc__ or "").strip(),
            )
            return f

        if func is not None:
            return decorator(func)
        return decorator

    def kinds(self) -> list[str]:
        return list(self._functions)

    def can_execute(self, context: ExecutionContext) -> bool:
        return context.component in self._functions

    async def execute(self, context: ExecutionContext) -> ExecutionResult:
        registered = self._functions[context.component]
        kwargs = self._build_kwargs(registered.func, context)

        if inspect.iscoroutinefunction(registered.func):
            result = await registered.func(**kwargs)
        else:
            result = await asyncio.to_thread(registered.func, **kwargs)

        if isinstance(result, ExecutionResult):
            return result
        if result is None:
            outputs: dict[str, Any] = {}
        elif isinstance(result, dict):
            outputs = result
        else:
            outputs = {"result": result, "response": result}

        return ExecutionResult.ok(
            context.node_id,
            outputs,
            logs=[f"Function '{context.component}' returned {sorted(outputs)}"],
        )

    def _build_kwargs(self, func: Callable[..., Any], context: ExecutionContext) -> dict[str, Any]:
        available = {
            "inputs": dict(context.inputs),
            "parameters": dict(context.parameters),
            "context": context,
        }
        sig = inspect.signature(func)
        if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
            return available
        return {name: value for name, value in available.items() if name in sig.parameters}
