"""
Workflow Executor.

Runs one workflow execution end to end: builds the context, schedules the
nodes, executes them in dependency order and persists the terminal state.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..core.config import Settings, get_settings
from ..models.execution import ExecutionLogEntry, NodeExecutionResult, NodeLogStatus
from ..models.workflow import Node, WorkflowDefinition
from ..nodes.base import is_trigger_node
from ..services.credential_service import CredentialService
from ..services.execution_repository import ExecutionRepository
from ..services.workflow_cache import WorkflowCache
from .context import ExecutionContext, normalize_trigger_output
from .events import (
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_STARTED,
    NODE_OUTPUT,
    EventPublisher,
    NullEventPublisher,
    make_event,
)
from .input_resolver import resolve_node_input
from .node_executor import NodeExecutor
from .scheduler import topological_levels, topological_sort

NodeOutcome = Tuple[Node, Optional[Dict[str, Any]], Union[NodeExecutionResult, BaseException]]


class WorkflowExecutor:
    """Orchestrates workflow runs; one instance may serve many concurrent runs."""

    def __init__(
        self,
        repository: Optional[ExecutionRepository] = None,
        credential_service: Optional[CredentialService] = None,
        cache: Optional[WorkflowCache] = None,
        event_publisher: Optional[EventPublisher] = None,
        node_executor: Optional[NodeExecutor] = None,
        settings: Optional[Settings] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or get_settings()
        self.repository = repository or ExecutionRepository()
        self.credential_service = credential_service or CredentialService()
        self.cache = cache or WorkflowCache()
        self.event_publisher = event_publisher or NullEventPublisher()
        self.node_executor = node_executor or NodeExecutor()

    async def execute_workflow(
        self,
        execution_id: str,
        workflow_def: Union[WorkflowDefinition, Dict[str, Any]],
        trigger_output: Optional[Dict[str, Any]],
        user_id: str,
        workflow_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Execute a workflow whose execution row already exists with status running.

        Returns:
            {"context": ..., "log": [...]} for a completed run

        Raises:
            Whatever aborted the run, after the failure has been persisted
        """
        channel = workflow_id or execution_id
        execution_log: List[Dict[str, Any]] = []
        log_extra = {"execution_id": execution_id}

        self.logger.info(f"🚀 Executing workflow: {workflow_id} (execution: {execution_id})", extra=log_extra)

        try:
            definition = (
                workflow_def
                if isinstance(workflow_def, WorkflowDefinition)
                else WorkflowDefinition.model_validate(workflow_def)
            )
            definition.validate_references()

            credentials = await self.credential_service.get_credentials_for_user(user_id)
            context = ExecutionContext(
                execution_id=execution_id,
                user_id=user_id,
                workflow_id=workflow_id,
                trigger_output=normalize_trigger_output(trigger_output),
                credentials=credentials,
            )
            await self._publish(channel, make_event(EXECUTION_STARTED, executionId=execution_id))

            if self.settings.max_concurrent_nodes > 1:
                await self._run_parallel(definition, context, execution_log)
            else:
                await self._run_sequential(definition, context, execution_log)

            result = context.to_result_dict()
            await self.repository.mark_completed(execution_id, result, execution_log)

        except Exception as e:
            error = str(e) or type(e).__name__
            self.logger.error(f"❌ Workflow execution {execution_id} failed: {error}", extra=log_extra)
            try:
                await self.repository.mark_failed(execution_id, error, execution_log)
            except Exception as persist_error:
                self.logger.error(f"Could not persist failure of execution {execution_id}: {persist_error}")
            await self._publish(channel, make_event(EXECUTION_FAILED, executionId=execution_id, error=error))
            raise

        self.logger.info(
            f"✅ Workflow execution {execution_id} completed ({len(execution_log)} node(s) logged)",
            extra=log_extra,
        )
        await self._publish(channel, make_event(EXECUTION_COMPLETED, executionId=execution_id))
        return {"context": result, "log": execution_log}

    async def _run_sequential(
        self, definition: WorkflowDefinition, context: ExecutionContext, execution_log: List[Dict[str, Any]]
    ) -> None:
        order = topological_sort(definition.nodes, definition.edges, self.settings.cycle_policy)
        self.logger.info(f"Execution order: {[node.id for node in order]}")

        for node in order:
            if is_trigger_node(node.type):
                context.record(node.id, context.trigger_output, logs=["trigger"])
                continue
            outcome = await self._execute_node(node, definition.edges, context)
            await self._apply_outcome(outcome, context, execution_log)

    async def _run_parallel(
        self, definition: WorkflowDefinition, context: ExecutionContext, execution_log: List[Dict[str, Any]]
    ) -> None:
        levels = topological_levels(definition.nodes, definition.edges, self.settings.cycle_policy)
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_nodes)

        async def bounded(node: Node) -> NodeOutcome:
            async with semaphore:
                return await self._execute_node(node, definition.edges, context)

        for level in levels:
            runnable = []
            for node in level:
                if is_trigger_node(node.type):
                    context.record(node.id, context.trigger_output, logs=["trigger"])
                else:
                    runnable.append(node)

            outcomes = await asyncio.gather(*(bounded(node) for node in runnable))

            first_error: Optional[BaseException] = None
            for outcome in outcomes:
                try:
                    await self._apply_outcome(outcome, context, execution_log)
                except Exception as e:
                    if first_error is None:
                        first_error = e
            if first_error is not None:
                raise first_error

    async def _execute_node(self, node: Node, edges: Sequence, context: ExecutionContext) -> NodeOutcome:
        node_input: Optional[Dict[str, Any]] = None
        try:
            node_input = resolve_node_input(node.id, edges, context)
            result = await self.node_executor.execute(node, node_input, context)
        except Exception as e:
            self.logger.error(f"Node {node.id} ({node.type}) failed: {e}")
            return node, node_input, e
        return node, node_input, result

    async def _apply_outcome(
        self, outcome: NodeOutcome, context: ExecutionContext, execution_log: List[Dict[str, Any]]
    ) -> None:
        node, node_input, result = outcome

        if isinstance(result, BaseException):
            entry = ExecutionLogEntry(
                node_id=node.id,
                node_type=node.type,
                status=NodeLogStatus.ERROR,
                input=node_input,
                error=str(result) or type(result).__name__,
            )
            execution_log.append(entry.model_dump(mode="json", by_alias=True))
            raise result

        context.record_result(node.id, result)
        entry = ExecutionLogEntry(
            node_id=node.id,
            node_type=node.type,
            status=NodeLogStatus.SUCCESS,
            input=node_input,
            output=result.output,
        )
        execution_log.append(entry.model_dump(mode="json", by_alias=True))
        await self._after_node(context, node, result)

    async def _after_node(self, context: ExecutionContext, node: Node, result: NodeExecutionResult) -> None:
        """Live output write, cache invalidation and node event; none of these may abort the run."""
        if context.workflow_id and self.settings.live_node_updates:
            try:
                await self.repository.update_node_output(context.workflow_id, node.id, result.output)
                await self.cache.invalidate(context.workflow_id)
            except Exception as e:
                self.logger.warning(f"Live update for node {node.id} failed: {e}")

        await self._publish(
            context.workflow_id or context.execution_id,
            make_event(
                NODE_OUTPUT,
                executionId=context.execution_id,
                nodeId=node.id,
                nodeType=node.type,
                output=result.output,
            ),
        )

    async def _publish(self, channel: str, event: Dict[str, Any]) -> None:
        try:
            await self.event_publisher.publish(channel, event)
        except Exception as e:
            self.logger.warning(f"Publishing {event.get('type')} failed: {e}")


async def execute_workflow(
    execution_id: str,
    workflow_def: Union[WorkflowDefinition, Dict[str, Any]],
    trigger_output: Optional[Dict[str, Any]],
    user_id: str,
    workflow_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Run a workflow with the default collaborators."""
    return await WorkflowExecutor().execute_workflow(
        execution_id, workflow_def, trigger_output, user_id, workflow_id=workflow_id
    )
