"""
Workflow definition models.
Defines Pydantic models for the node/edge graph persisted by the editor.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import WorkflowValidationError


class Node(BaseModel):
    """A single workflow node."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., description="Node ID, unique within the workflow")
    type: str = Field(..., description="Discriminator selecting the node handler")
    position: Optional[Dict[str, float]] = Field(None, description="Canvas position")
    data: Dict[str, Any] = Field(default_factory=dict, description="Node configuration")


class Edge(BaseModel):
    """Directed dependency: target consumes the source's output."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(None, description="Edge ID")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")


class WorkflowDefinition(BaseModel):
    """Immutable graph for one execution."""

    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def validate_references(self) -> None:
        """Raise if node ids repeat or an edge points at a node that does not exist."""
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise WorkflowValidationError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

        for edge in self.edges:
            missing = [node_id for node_id in (edge.source, edge.target) if node_id not in seen]
            if missing:
                raise WorkflowValidationError(
                    f"Edge {edge.id or '?'} references unknown node(s): {', '.join(missing)}"
                )
