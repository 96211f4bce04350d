"""
Data models for the workflow engine.
"""

from .credential import CredentialType, ProviderCredential
from .execution import (
    ExecutionLogEntry,
    ExecutionStatus,
    NodeExecutionResult,
    NodeLogStatus,
    WorkflowExecutionRecord,
)
from .workflow import Edge, Node, WorkflowDefinition

__all__ = [
    "CredentialType",
    "ProviderCredential",
    "ExecutionLogEntry",
    "ExecutionStatus",
    "NodeExecutionResult",
    "NodeLogStatus",
    "WorkflowExecutionRecord",
    "Edge",
    "Node",
    "WorkflowDefinition",
]
