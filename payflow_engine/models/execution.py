"""
Execution models for the workflow engine.
Defines Pydantic models for execution tracking and per-node results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Execution status values."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NodeLogStatus(str, Enum):
    """Status of one attempted node in the execution log."""

    SUCCESS = "success"
    ERROR = "error"


class NodeExecutionResult(BaseModel):
    """Adapter-shaped result of a completed node."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(True, description="Whether the node completed")
    output: Any = Field(default_factory=dict, description="Node output")
    logs: List[str] = Field(default_factory=list, description="Execution logs")
    triggered_at: datetime = Field(default_factory=utc_now, alias="triggeredAt")


class ExecutionLogEntry(BaseModel):
    """One attempted node; appended in execution order."""

    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(..., alias="nodeId")
    node_type: str = Field(..., alias="nodeType")
    status: NodeLogStatus
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class WorkflowExecutionRecord(BaseModel):
    """Persisted audit record of one run."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    workflow_id: Optional[str] = Field(None, alias="workflowId")
    user_id: str = Field(..., alias="userId")
    status: ExecutionStatus
    started_at: datetime = Field(..., alias="startedAt")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    trigger_input: Dict[str, Any] = Field(default_factory=dict, alias="triggerInput")
    result: Optional[Dict[str, Any]] = None
    execution_log: Optional[List[Dict[str, Any]]] = Field(None, alias="executionLog")
    error: Optional[str] = None
