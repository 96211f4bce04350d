"""
Manual-run entry point: creates the execution row and runs the workflow in the background.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from ..engine.workflow_executor import WorkflowExecutor
from ..exceptions import WorkflowNotFoundError
from .execution_repository import ExecutionRepository

logger = logging.getLogger(__name__)


class ExecutionService:
    """Starts workflow runs without waiting for them to finish."""

    def __init__(
        self,
        repository: Optional[ExecutionRepository] = None,
        executor: Optional[WorkflowExecutor] = None,
    ):
        self.repository = repository or ExecutionRepository()
        self.executor = executor or WorkflowExecutor(repository=self.repository)
        self._tasks: Set[asyncio.Task] = set()

    async def start_execution(
        self, workflow_id: str, user_id: str, trigger_output: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Create a running execution and schedule it.

        Returns:
            The execution id

        Raises:
            WorkflowNotFoundError: unknown workflow, or one owned by another user
        """
        workflow = await self.repository.get_workflow(workflow_id)
        if workflow is None or workflow.user_id != user_id:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")

        content = workflow.content or {}
        definition = {"nodes": content.get("nodes", []), "edges": content.get("edges", [])}
        trigger_output = trigger_output or {}

        record = await self.repository.create_execution(user_id, trigger_output, workflow_id=workflow_id)

        task = asyncio.create_task(
            self.executor.execute_workflow(record.id, definition, trigger_output, user_id, workflow_id=workflow_id),
            name=f"execution-{record.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

        logger.info(f"Started execution {record.id} for workflow {workflow_id}")
        return record.id

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"{task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} failed: {error}")

    @property
    def running_count(self) -> int:
        return len(self._tasks)

    async def wait_for_all(self) -> None:
        """Wait for every background run started by this service."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
