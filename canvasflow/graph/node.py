"""
Node Protocol - What runs in a flow and how its lifecycle is tracked.

A node is static data dropped on the canvas: an id, a kind ("input", "agent",
"output", "tool", provider-specific kinds ...) and whatever the canvas stored
for it. The kind is an open enumeration; the core only uses it for dispatch.

Per-run lifecycle lives in NodeState:

    idle -> running -> completed
                    -> error

completed and error are terminal for the run. A new run starts from a fresh
map of idle states; states are never carried between runs.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from canvasflow.errors import InvalidTransitionError


class NodeStatus(StrEnum):
    """Lifecycle status of a node within one run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class NodeSpec(BaseModel):
    """
    Specification for a node in the flow graph.

    Example:
        NodeSpec(
            id="agent-1",
            kind="agent",
            data={"parameters": {"system_prompt": "Be brief about {{flowState.topic}}"}},
        )
    """

    id: str
    kind: str = Field(alias="type", description="Open-ended node kind used for dispatch")
    position: Any = None
    data: dict[str, Any] = Field(default_factory=dict, description="Static node data")

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    @property
    def parameters(self) -> dict[str, Any]:
        """Static parameters handed to the executor."""
        params = self.data.get("parameters")
        return dict(params) if isinstance(params, dict) else {}

    @property
    def framework(self) -> str:
        return str(self.data.get("framework") or "custom")

    @property
    def component(self) -> str:
        """Component name executors match on; defaults to the node kind."""
        return str(self.data.get("component") or self.kind or "unknown")

    @property
    def declared_inputs(self) -> list[str] | None:
        """Names of inputs the node asks for, or None to receive everything."""
        inputs = self.data.get("inputs")
        if not isinstance(inputs, list):
            return None
        names = []
        for item in inputs:
            if isinstance(item, dict) and "name" in item:
                names.append(str(item["name"]))
            elif isinstance(item, str):
                names.append(item)
        return names


class NodeState(BaseModel):
    """Mutable per-run state of one node. Only the flow executor changes it."""

    status: NodeStatus = NodeStatus.IDLE
    result: Any = None
    error: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    logs: list[str] = Field(default_factory=list)

    def start(self, node_id: str, kind: str) -> None:
        """idle -> running."""
        if self.status != NodeStatus.IDLE:
            raise InvalidTransitionError(node_id, self.status, NodeStatus.RUNNING)
        self.status = NodeStatus.RUNNING
        self.result = None
        self.error = None
        self.started_at = datetime.now()
        self.ended_at = None
        self.logs.append(f"Started execution of {kind}")

    def complete(self, node_id: str, result: Any, logs: list[str] | None = None) -> None:
        """running -> completed."""
        if self.status != NodeStatus.RUNNING:
            raise InvalidTransitionError(node_id, self.status, NodeStatus.COMPLETED)
        self.status = NodeStatus.COMPLETED
        self.result = result
        self.ended_at = datetime.now()
        self.logs.extend(logs or [])
        self.logs.append("Execution completed successfully")

    def fail(self, node_id: str, error: str, logs: list[str] | None = None) -> None:
        """running -> error."""
        if self.status != NodeStatus.RUNNING:
            raise InvalidTransitionError(node_id, self.status, NodeStatus.ERROR)
        self.status = NodeStatus.ERROR
        self.error = error
        self.ended_at = datetime.now()
        self.logs.extend(logs or [])
        self.logs.append(f"Error: {error}")

    @property
    def is_terminal(self) -> bool:
        return self.status in (NodeStatus.COMPLETED, NodeStatus.ERROR)
