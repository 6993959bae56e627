"""
canvasflow - execution core for node-canvas AI workflows.

Turns a graph of typed nodes into a deterministic sequential run, dispatching
each node to the first matching executor backend and tracking node
lifecycle, cumulative outputs and run-scoped flow state.
"""

from canvasflow.config import FlowConfig, LLMConfig
from canvasflow.errors import (
    CanvasFlowError,
    CycleDetectedError,
    ExecutionInProgressError,
    ExecutorError,
    GraphInvalidError,
    InvalidTransitionError,
    NoExecutorFoundError,
    VariableError,
)
from canvasflow.executors import (
    BasicNodesExecutor,
    ExecutionContext,
    ExecutionResult,
    Executor,
    ExecutorRegistry,
    FunctionExecutor,
    LLMAgentExecutor,
    create_default_registry,
)
from canvasflow.graph import (
    EdgeSpec,
    FlowExecutor,
    GraphSpec,
    NodeSpec,
    NodeState,
    NodeStatus,
    load_flow,
    order,
)
from canvasflow.runtime import CancellationToken, FlowStateManager
from canvasflow.runtime.run_state import RunResult, RunStatus
from canvasflow.schemas import Variable, VariableKind

__version__ = "0.1.0"

__all__ = [
    # Graph
    "NodeSpec",
    "EdgeSpec",
    "GraphSpec",
    "NodeState",
    "NodeStatus",
    "load_flow",
    "order",
    # Execution
    "FlowExecutor",
    "RunResult",
    "RunStatus",
    "CancellationToken",
    # Executors
    "Executor",
    "ExecutionContext",
    "ExecutionResult",
    "ExecutorRegistry",
    "BasicNodesExecutor",
    "FunctionExecutor",
    "LLMAgentExecutor",
    "create_default_registry",
    # State
    "FlowStateManager",
    "Variable",
    "VariableKind",
    # Config
    "FlowConfig",
    "LLMConfig",
    # Errors
    "CanvasFlowError",
    "GraphInvalidError",
    "CycleDetectedError",
    "NoExecutorFoundError",
    "ExecutorError",
    "InvalidTransitionError",
    "VariableError",
    "ExecutionInProgressError",
]
