"""
Topological scheduling of workflow nodes.

Kahn's algorithm with a FIFO queue seeded in node-declaration order. Nodes
that never reach in-degree zero (cycle members and everything downstream of a
cycle) are handled according to the cycle policy.
"""

import logging
from collections import deque
from typing import Dict, List, Sequence, Tuple

from ..core.config import CyclePolicy
from ..exceptions import WorkflowCycleError
from ..models.workflow import Edge, Node

logger = logging.getLogger(__name__)


def _build_graph(nodes: Sequence[Node], edges: Sequence[Edge]) -> Tuple[Dict[str, List[str]], Dict[str, int]]:
    graph: Dict[str, List[str]] = {node.id: [] for node in nodes}
    in_degree: Dict[str, int] = {node.id: 0 for node in nodes}

    for edge in edges:
        if edge.source not in graph or edge.target not in graph:
            logger.debug(f"Ignoring edge {edge.id} with unknown endpoint")
            continue
        graph[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    return graph, in_degree


def _handle_unreachable(nodes: Sequence[Node], ordered_ids: set, policy: CyclePolicy) -> None:
    dropped = [node.id for node in nodes if node.id not in ordered_ids]
    if not dropped:
        return
    if policy == CyclePolicy.FAIL:
        raise WorkflowCycleError(dropped)
    logger.warning(f"Skipping {len(dropped)} node(s) caught in a cycle: {dropped}")


def topological_sort(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    cycle_policy: CyclePolicy = CyclePolicy.SKIP,
) -> List[Node]:
    """
    Order nodes so every node comes after all sources of its incoming edges.

    Args:
        nodes: Workflow nodes
        edges: Workflow edges
        cycle_policy: SKIP drops nodes that cannot be scheduled, FAIL raises

    Returns:
        Nodes in execution order

    Raises:
        WorkflowCycleError: if a cycle exists and the policy is FAIL
    """
    graph, in_degree = _build_graph(nodes, edges)
    by_id = {node.id: node for node in nodes}

    queue = deque(node.id for node in nodes if in_degree[node.id] == 0)
    ordered: List[Node] = []

    while queue:
        node_id = queue.popleft()
        ordered.append(by_id[node_id])

        for target_id in graph[node_id]:
            in_degree[target_id] -= 1
            if in_degree[target_id] == 0:
                queue.append(target_id)

    _handle_unreachable(nodes, {node.id for node in ordered}, cycle_policy)
    return ordered


def topological_levels(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    cycle_policy: CyclePolicy = CyclePolicy.SKIP,
) -> List[List[Node]]:
    """
    Group nodes into dependency levels.

    Every node in a level depends only on nodes of earlier levels, so the
    members of one level may run concurrently. Flattening the levels gives
    the same order as topological_sort.
    """
    graph, in_degree = _build_graph(nodes, edges)
    by_id = {node.id: node for node in nodes}

    current = [node.id for node in nodes if in_degree[node.id] == 0]
    levels: List[List[Node]] = []
    scheduled = set()

    while current:
        levels.append([by_id[node_id] for node_id in current])
        scheduled.update(current)

        next_level: List[str] = []
        for node_id in current:
            for target_id in graph[node_id]:
                in_degree[target_id] -= 1
                if in_degree[target_id] == 0:
                    next_level.append(target_id)
        current = next_level

    _handle_unreachable(nodes, scheduled, cycle_policy)
    return levels
