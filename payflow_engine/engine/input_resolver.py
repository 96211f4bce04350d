"""
Resolution of a node's input from its incoming edges.
"""

from collections import OrderedDict
from typing import Any, Dict, List, Sequence

from ..models.workflow import Edge
from .context import ExecutionContext


def _collapse(outputs: List[Any]) -> Any:
    # One source binds the value itself, several bind a list in edge order
    return outputs[0] if len(outputs) == 1 else list(outputs)


def resolve_node_input(node_id: str, edges: Sequence[Edge], context: ExecutionContext) -> Dict[str, Any]:
    """
    Build the input object for a node.

    - no incoming edges: {"trigger": ..., "nodes": {...}}
    - edges with a targetHandle bind input[handle]
    - edges without one bind input["previous"] and input[source_id]
    - "trigger" and "nodes" are always present
    """
    trigger = context.trigger_output
    nodes_snapshot = context.node_outputs_snapshot()

    incoming = [edge for edge in edges if edge.target == node_id]
    if not incoming:
        return {"trigger": trigger, "nodes": nodes_snapshot}

    handled: "OrderedDict[str, List[Any]]" = OrderedDict()
    generic: List[Edge] = []
    for edge in incoming:
        if edge.target_handle:
            handled.setdefault(edge.target_handle, []).append(context.get_output(edge.source))
        else:
            generic.append(edge)

    node_input: Dict[str, Any] = {}
    for handle, outputs in handled.items():
        node_input[handle] = _collapse(outputs)

    if generic:
        generic_outputs = [context.get_output(edge.source) for edge in generic]
        node_input["previous"] = _collapse(generic_outputs)
        for edge, output in zip(generic, generic_outputs):
            node_input[edge.source] = output

    node_input["trigger"] = trigger
    node_input["nodes"] = nodes_snapshot
    return node_input
