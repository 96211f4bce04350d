"""
Workflow Engine Exceptions

Custom exception classes for workflow validation and execution.
"""

from typing import List, Optional


class PayflowError(Exception):
    """Base exception for workflow engine errors."""

    pass


class WorkflowValidationError(PayflowError):
    """Raised when a workflow definition is structurally invalid."""

    pass


class WorkflowCycleError(WorkflowValidationError):
    """Raised when the edge set contains a cycle and the cycle policy is 'fail'."""

    def __init__(self, node_ids: List[str]):
        self.node_ids = list(node_ids)
        super().__init__(
            f"Workflow contains a cycle; unreachable nodes: {', '.join(self.node_ids)}"
        )


class NodeExecutionError(PayflowError):
    """Raised by built-in node handlers when a node cannot complete."""

    def __init__(self, message: str, node_id: Optional[str] = None, node_type: Optional[str] = None):
        self.node_id = node_id
        self.node_type = node_type
        super().__init__(message)


class WorkflowNotFoundError(PayflowError):
    """Raised when a workflow does not exist or belongs to another user."""

    pass
