"""
Executor protocol - the boundary that node backends implement.

An executor declares which execution contexts it handles (can_execute) and
turns a context into an ExecutionResult (execute). Backends range from the
built-in node kinds to LLM-backed agents and user-supplied Python callables;
the flow executor never looks inside them.

Executors read the context they are given and return outputs. They never
write to the run's global data or flow state directly; keys an executor wants
stored in flow state go into ExecutionResult.flow_state_updates and the flow
executor folds them in.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Protocol, runtime_checkable

from canvasflow.runtime.cancellation import CancellationToken

ResultStatus = Literal["success", "error"]


@dataclass
class ExecutionContext:
    """Everything an executor may look at for one node execution."""

    node_id: str
    kind: str
    inputs: dict[str, Any] = field(default_factory=dict)
    parameters: dict[str, Any] = field(default_factory=dict)
    framework: str = "custom"
    component: str = ""
    flow_state: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    cancel_token: CancellationToken | None = None

    def __post_init__(self) -> None:
        if not self.component:
            self.component = self.kind

    def first_input(self, *keys: str, default: Any = None) -> Any:
        """Return the first of `keys` present (and not None) in inputs."""
        for key in keys:
            value = self.inputs.get(key)
            if value is not None and value != "":
                return value
        return default

    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled


@dataclass(frozen=True)
class ExecutionResult:
    """Result of executing one node. Immutable once produced."""

    node_id: str
    outputs: dict[str, Any] = field(default_factory=dict)
    status: ResultStatus = "success"
    error: str | None = None
    execution_time_ms: int = 0
    logs: list[str] = field(default_factory=list)
    flow_state_updates: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == "success"

    @classmethod
    def ok(
        cls,
        node_id: str,
        outputs: dict[str, Any],
        logs: list[str] | None = None,
        execution_time_ms: int = 0,
        flow_state_updates: dict[str, Any] | None = None,
    ) -> "ExecutionResult":
        return cls(
            node_id=node_id,
            outputs=outputs,
            status="success",
            execution_time_ms=execution_time_ms,
            logs=list(logs or []),
            flow_state_updates=dict(flow_state_updates or {}),
        )

    @classmethod
    def failed(
        cls,
        node_id: str,
        error: str,
        logs: list[str] | None = None,
        execution_time_ms: int = 0,
    ) -> "ExecutionResult":
        return cls(
            node_id=node_id,
            outputs={},
            status="error",
            error=error,
            execution_time_ms=execution_time_ms,
            logs=list(logs or []),
        )


@runtime_checkable
class Executor(Protocol):
    """Protocol every executor backend implements."""

    name: str

    def can_execute(self, context: ExecutionContext) -> bool: ...

    async def execute(self, context: ExecutionContext) -> ExecutionResult: ...
