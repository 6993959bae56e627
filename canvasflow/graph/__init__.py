"""Graph structures: nodes, edges, scheduling and flow execution."""

from canvasflow.graph.edge import EdgeSpec, GraphSpec, load_flow
from canvasflow.graph.executor import FlowExecutor, NodeStatusCallback
from canvasflow.graph.node import NodeSpec, NodeState, NodeStatus
from canvasflow.graph.scheduler import execution_levels, order, order_ids

__all__ = [
    # Node
    "NodeSpec",
    "NodeState",
    "NodeStatus",
    # Edge
    "EdgeSpec",
    "GraphSpec",
    "load_flow",
    # Scheduling
    "order",
    "order_ids",
    "execution_levels",
    # Execution
    "FlowExecutor",
    "NodeStatusCallback",
]
