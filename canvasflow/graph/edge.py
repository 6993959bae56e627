"""
Edge Protocol - How nodes connect in a flow.

An edge says "target must run after source". Port ids (the canvas handles
an edge was drawn between) are kept for the canvas but do not route values:
every completed node's outputs are merged into one cumulative bag that all
later nodes can read.

Flow documents produced by the canvas export look like:

    {"flow": {"id": "...", "name": "...", "version": "...", "meta": {...},
              "nodes": [...], "edges": [...]}}

load_flow() accepts that shape or a bare {"nodes": [...], "edges": [...]}.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from canvasflow.graph.node import NodeSpec


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Example:
        EdgeSpec(id="e1", source="input-1", target="agent-1", source_port="out")
    """

    id: str
    source: str = Field(
        validation_alias=AliasChoices("source", "sourceNodeId", "source_node_id"),
        description="Source node ID",
    )
    target: str = Field(
        validation_alias=AliasChoices("target", "targetNodeId", "target_node_id"),
        description="Target node ID",
    )
    source_port: str | None = Field(
        default=None, validation_alias=AliasChoices("source_port", "sourceHandle", "sourcePort")
    )
    target_port: str | None = Field(
        default=None, validation_alias=AliasChoices("target_port", "targetHandle", "targetPort")
    )

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


class GraphSpec(BaseModel):
    """
    Complete flow graph: nodes plus the dependencies between them.

    Example:
        graph = GraphSpec(
            id="hello",
            nodes=[NodeSpec(id="in", kind="input", data={"text": "hello"}),
                   NodeSpec(id="out", kind="output")],
            edges=[EdgeSpec(id="e1", source="in", target="out")],
        )
    """

    id: str = "flow"
    name: str = ""
    version: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def validate(self) -> list[str]:  # type: ignore[override]
        """Validate the graph structure. Cycles are reported by the scheduler."""
        errors = []

        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen.add(node.id)

        for edge in self.edges:
            if edge.source not in seen:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            if edge.source == edge.target:
                errors.append(f"Edge '{edge.id}' connects node '{edge.source}' to itself")

        return errors


def load_flow(source: str | Path | dict[str, Any]) -> GraphSpec:
    """Build a GraphSpec from a flow document, a JSON string or a path to a JSON file."""
    if isinstance(source, dict):
        document = source
    elif isinstance(source, Path) or not str(source).lstrip().startswith("{"):
        with open(source, encoding="utf-8") as f:
            document = json.load(f)
    else:
        document = json.loads(source)

    flow = document.get("flow", document)
    return GraphSpec.model_validate(flow)
