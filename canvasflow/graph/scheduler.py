"""
Topological scheduling of flow graphs.

Kahn's algorithm: count incoming dependencies per node, start from the nodes
with none, and release a successor once all of its predecessors have been
placed. When several nodes are ready at the same time the one that comes first
in the original node list goes first, so the same graph always yields the same
order. Dependency order is the only signal; there are no weights or priorities.
"""

import heapq
import logging
from collections.abc import Sequence

from canvasflow.errors import CycleDetectedError, GraphInvalidError
from canvasflow.graph.edge import EdgeSpec
from canvasflow.graph.node import NodeSpec

logger = logging.getLogger(__name__)


def _build_dependency_graph(
    nodes: Sequence[NodeSpec],
    edges: Sequence[EdgeSpec],
) -> tuple[dict[str, int], dict[str, list[str]], dict[str, list[str]]]:
    """Return (in_degree, successors, predecessors), validating ids along the way."""
    errors: list[str] = []
    in_degree: dict[str, int] = {}
    for node in nodes:
        if node.id in in_degree:
            errors.append(f"Duplicate node ID: '{node.id}'")
        in_degree[node.id] = 0

    successors: dict[str, list[str]] = {node_id: [] for node_id in in_degree}
    predecessors: dict[str, list[str]] = {node_id: [] for node_id in in_degree}
    seen_pairs: set[tuple[str, str]] = set()

    for edge in edges:
        if edge.source not in in_degree:
            errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            continue
        if edge.target not in in_degree:
            errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            continue
        pair = (edge.source, edge.target)
        # Parallel edges (e.g. two ports) are one dependency
        if pair in seen_pairs:
            continue
        seen_pairs.add(pair)
        successors[edge.source].append(edge.target)
        predecessors[edge.target].append(edge.source)
        in_degree[edge.target] += 1

    if errors:
        raise GraphInvalidError("; ".join(errors), errors)

    return in_degree, successors, predecessors


def _find_cycle_node(remaining: list[str], predecessors: dict[str, list[str]]) -> str:
    """Walk predecessors among unscheduled nodes until a node repeats."""
    pending = set(remaining)
    current = remaining[0]
    visited: set[str] = set()
    while current not in visited:
        visited.add(current)
        # Every unscheduled node has at least one unscheduled predecessor
        current = next(p for p in predecessors[current] if p in pending)
    return current


def order(nodes: Sequence[NodeSpec], edges: Sequence[EdgeSpec]) -> list[NodeSpec]:
    """
    Compute the execution order for a flow.

    Args:
        nodes: Nodes in canvas order (used for tie-breaking)
        edges: Dependencies; source must run before target

    Returns:
        Every node exactly once, each after all of its predecessors

    Raises:
        GraphInvalidError: duplicate ids or edges referencing unknown nodes
        CycleDetectedError: the graph contains a cycle
    """
    in_degree, successors, predecessors = _build_dependency_graph(nodes, edges)

    index = {node.id: i for i, node in enumerate(nodes)}
    by_id = {node.id: node for node in nodes}

    ready = [(index[node_id], node_id) for node_id, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    result: list[NodeSpec] = []
    while ready:
        _, node_id = heapq.heappop(ready)
        result.append(by_id[node_id])
        for target in successors[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                heapq.heappush(ready, (index[target], target))

    if len(result) < len(in_degree):
        scheduled = {node.id for node in result}
        remaining = [node.id for node in nodes if node.id not in scheduled]
        cycle_node = _find_cycle_node(remaining, predecessors)
        logger.warning(f"Cycle detected at node '{cycle_node}'")
        raise CycleDetectedError(cycle_node, remaining)

    logger.debug(f"Execution order: {' → '.join(node.id for node in result)}")
    return result


def order_ids(nodes: Sequence[NodeSpec], edges: Sequence[EdgeSpec]) -> list[str]:
    """Same as order(), returning node ids only."""
    return [node.id for node in order(nodes, edges)]


def execution_levels(nodes: Sequence[NodeSpec], edges: Sequence[EdgeSpec]) -> list[list[str]]:
    """
    Group nodes into dependency levels.

    Level 0 holds nodes without predecessors; level n holds nodes whose
    deepest predecessor sits at level n-1. Nodes inside a level have no
    dependency on each other. Within a level, canvas order is kept.
    """
    ordered = order(nodes, edges)
    _, _, predecessors = _build_dependency_graph(nodes, edges)

    depth: dict[str, int] = {}
    for node in ordered:
        preds = predecessors[node.id]
        depth[node.id] = max((depth[p] + 1 for p in preds), default=0)

    levels: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for node in nodes:
        levels[depth[node.id]].append(node.id)
    return levels
