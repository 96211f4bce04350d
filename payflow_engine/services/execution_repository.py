"""
Persistence of workflow executions and live node outputs.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..models.database import get_session_factory
from ..models.db_models import WorkflowExecutionRow, WorkflowRow
from ..models.execution import ExecutionStatus, WorkflowExecutionRecord, utc_now
from ..models.workflow import WorkflowDefinition

logger = logging.getLogger(__name__)


class ExecutionNotFoundError(Exception):
    """Raised when an execution row does not exist."""

    pass


def _to_record(row: WorkflowExecutionRow) -> WorkflowExecutionRecord:
    return WorkflowExecutionRecord(
        id=row.id,
        workflow_id=row.workflow_id,
        user_id=row.user_id,
        status=ExecutionStatus(row.status),
        started_at=row.started_at,
        completed_at=row.completed_at,
        trigger_input=row.trigger_input or {},
        result=row.result,
        execution_log=row.execution_log,
        error=row.error,
    )


class ExecutionRepository:
    """Reads and writes workflow and execution rows."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or get_session_factory()

    def _session(self) -> Session:
        return self.session_factory()

    async def create_execution(
        self,
        user_id: str,
        trigger_input: Dict[str, Any],
        workflow_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> WorkflowExecutionRecord:
        """Insert the execution row with status running before any node executes."""
        with self._session() as session:
            row = WorkflowExecutionRow(
                workflow_id=workflow_id,
                user_id=user_id,
                status=ExecutionStatus.RUNNING.value,
                started_at=utc_now(),
                trigger_input=trigger_input,
            )
            if execution_id:
                row.id = execution_id
            session.add(row)
            session.commit()
            logger.info(f"Created execution {row.id} for workflow {workflow_id}")
            return _to_record(row)

    async def _finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        result: Dict[str, Any],
        execution_log: List[Dict[str, Any]],
        error: Optional[str] = None,
    ) -> None:
        with self._session() as session:
            row = session.get(WorkflowExecutionRow, execution_id)
            if row is None:
                raise ExecutionNotFoundError(f"Execution {execution_id} not found")
            row.status = status.value
            row.completed_at = utc_now()
            row.result = to_jsonable_python(result, fallback=str)
            row.execution_log = to_jsonable_python(execution_log, fallback=str)
            row.error = error
            session.commit()

    async def mark_completed(
        self, execution_id: str, result: Dict[str, Any], execution_log: List[Dict[str, Any]]
    ) -> None:
        await self._finish(execution_id, ExecutionStatus.COMPLETED, result, execution_log)

    async def mark_failed(self, execution_id: str, error: str, execution_log: List[Dict[str, Any]]) -> None:
        await self._finish(execution_id, ExecutionStatus.FAILED, {"error": error}, execution_log, error=error)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecutionRecord]:
        with self._session() as session:
            row = session.get(WorkflowExecutionRow, execution_id)
            return _to_record(row) if row is not None else None

    async def list_executions(self, workflow_id: str, limit: int = 20) -> List[WorkflowExecutionRecord]:
        with self._session() as session:
            rows = session.scalars(
                select(WorkflowExecutionRow)
                .where(WorkflowExecutionRow.workflow_id == workflow_id)
                .order_by(WorkflowExecutionRow.started_at.desc())
                .limit(limit)
            ).all()
            return [_to_record(row) for row in rows]

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowRow]:
        with self._session() as session:
            return session.get(WorkflowRow, workflow_id)

    async def get_workflow_definition(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        workflow = await self.get_workflow(workflow_id)
        if workflow is None:
            return None
        content = workflow.content or {}
        return WorkflowDefinition(nodes=content.get("nodes", []), edges=content.get("edges", []))

    async def update_node_output(self, workflow_id: str, node_id: str, output: Any) -> bool:
        """Store a node's latest output in the workflow content for live display."""
        with self._session() as session:
            workflow = session.get(WorkflowRow, workflow_id)
            if workflow is None or not workflow.content:
                logger.warning(f"⚠️ Could not find workflow {workflow_id} to update node output")
                return False

            content = dict(workflow.content)
            nodes = []
            for node in content.get("nodes", []):
                if node.get("id") == node_id:
                    node = {
                        **node,
                        "data": {
                            **(node.get("data") or {}),
                            "lastOutput": to_jsonable_python(output, fallback=str),
                            "lastExecutedAt": utc_now().isoformat(),
                        },
                    }
                nodes.append(node)
            content["nodes"] = nodes

            # Reassign so the JSON column is flagged dirty
            workflow.content = content
            session.commit()
            return True
