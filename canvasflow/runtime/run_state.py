"""
Run state - everything the flow executor tracks for one run.

FlowRunState is owned by the FlowExecutor and only mutated by it. Outside
readers (UI, tests, callers) get RunResult snapshots, which are deep copies.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from canvasflow.executors.base import ExecutionResult
from canvasflow.graph.node import NodeState


class RunStatus(StrEnum):
    """Status of a whole run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class FlowRunState:
    """Mutable state of the current run."""

    execution_id: str = ""
    run_id: str = ""
    status: RunStatus = RunStatus.IDLE
    current_node_id: str | None = None
    node_states: dict[str, NodeState] = field(default_factory=dict)
    global_data: dict[str, Any] = field(default_factory=dict)
    flow_state: dict[str, Any] = field(default_factory=dict)
    execution_order: list[str] = field(default_factory=list)
    results: dict[str, ExecutionResult] = field(default_factory=dict)
    error: str | None = None
    error_type: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_executing(self) -> bool:
        return self.status == RunStatus.RUNNING

    def node_state(self, node_id: str) -> NodeState:
        """Get (creating lazily as idle) the state of a node."""
        state = self.node_states.get(node_id)
        if state is None:
            state = NodeState()
            self.node_states[node_id] = state
        return state

    def snapshot(self) -> "RunResult":
        return RunResult(
            execution_id=self.execution_id,
            run_id=self.run_id,
            status=self.status,
            error=self.error,
            error_type=self.error_type,
            current_node_id=self.current_node_id,
            results=copy.deepcopy(self.results),
            node_states={k: v.model_copy(deep=True) for k, v in self.node_states.items()},
            global_data=copy.deepcopy(self.global_data),
            flow_state=copy.deepcopy(self.flow_state),
            execution_order=list(self.execution_order),
            started_at=self.started_at,
            ended_at=self.ended_at,
        )


@dataclass
class RunResult:
    """Outcome of a run, including partial results when it stopped early."""

    execution_id: str
    run_id: str
    status: RunStatus
    error: str | None = None
    error_type: str | None = None
    current_node_id: str | None = None
    results: dict[str, ExecutionResult] = field(default_factory=dict)
    node_states: dict[str, NodeState] = field(default_factory=dict)
    global_data: dict[str, Any] = field(default_factory=dict)
    flow_state: dict[str, Any] = field(default_factory=dict)
    execution_order: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def is_executing(self) -> bool:
        return self.status == RunStatus.RUNNING

    @property
    def duration_ms(self) -> int:
        if self.started_at is None or self.ended_at is None:
            return 0
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    def get_node_state(self, node_id: str) -> NodeState:
        """State of a node; nodes never touched read as idle."""
        return self.node_states.get(node_id) or NodeState()

    @property
    def output(self) -> Any:
        """Display value of the last completed node, if any."""
        for node_id in reversed(self.execution_order):
            result = self.results.get(node_id)
            if result is not None and result.success:
                outputs = result.outputs
                for key in ("display", "response", "result"):
                    if key in outputs:
                        return outputs[key]
                return outputs
        return None

    def summary(self) -> dict[str, Any]:
        """JSON-friendly overview for logs and the CLI."""
        return {
            "execution_id": self.execution_id,
            "run_id": self.run_id,
            "status": str(self.status),
            "error": self.error,
            "error_type": self.error_type,
            "execution_order": self.execution_order,
            "nodes": {
                node_id: {
                    "status": str(state.status),
                    "error": state.error,
                }
                for node_id, state in self.node_states.items()
            },
            "output": self.output,
            "duration_ms": self.duration_ms,
        }
