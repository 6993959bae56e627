"""
Error taxonomy for flow execution.

- GraphInvalidError: the graph cannot be ordered (cycle, dangling edge, duplicate id)
- NoExecutorFoundError: no registered executor accepted a node's context
- ExecutorError: an executor ran and failed
- InvalidTransitionError: a node state change outside idle -> running -> completed|error
- VariableError: a forbidden variable operation (e.g. deleting a dynamic variable)
- ExecutionInProgressError: a second run was started on a busy executor

Unresolved `{{token}}` substitutions are never errors; the token is left as-is.
"""

from typing import Any


class CanvasFlowError(Exception):
    """Base class for all canvasflow errors."""


class GraphInvalidError(CanvasFlowError):
    """The graph is malformed and cannot be scheduled."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class CycleDetectedError(GraphInvalidError):
    """The graph contains at least one cycle."""

    def __init__(self, node_id: str, remaining: list[str]):
        self.node_id = node_id
        self.remaining = remaining
        message = (
            f"Cycle detected involving node '{node_id}' "
            f"(unscheduled nodes: {', '.join(remaining)})"
        )
        super().__init__(message)


class NoExecutorFoundError(CanvasFlowError):
    """Dispatch found no executor willing to run a node."""

    def __init__(self, node_id: str, kind: str, framework: str = "custom"):
        self.node_id = node_id
        self.kind = kind
        self.framework = framework
        super().__init__(f"No executor found for {framework}:{kind} (node '{node_id}')")


class ExecutorError(CanvasFlowError):
    """An executor failed while running a node."""

    def __init__(self, message: str, node_id: str | None = None, details: Any = None):
        super().__init__(message)
        self.node_id = node_id
        self.details = details


class InvalidTransitionError(CanvasFlowError):
    """A node state change that the lifecycle does not allow."""

    def __init__(self, node_id: str, current: str, target: str):
        self.node_id = node_id
        self.current = current
        self.target = target
        super().__init__(f"Node '{node_id}' cannot move from {current} to {target}")


class VariableError(CanvasFlowError):
    """A variable operation was refused."""


class ExecutionInProgressError(CanvasFlowError):
    """The executor is already running a flow."""
