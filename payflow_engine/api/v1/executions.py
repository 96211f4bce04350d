import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from ...exceptions import WorkflowNotFoundError
from ...models.execution import WorkflowExecutionRecord
from ...services.execution_service import ExecutionService

logger = logging.getLogger(__name__)

router = APIRouter()


class ExecuteWorkflowRequest(BaseModel):
    """Request body for a manual run."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", description="User the run executes for")
    trigger_output: Dict[str, Any] = Field(
        default_factory=dict, alias="triggerOutput", description="Payload exposed as {{trigger.*}}"
    )


class ExecuteWorkflowResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    execution_id: str = Field(..., alias="executionId")
    status: str = "running"


def get_execution_service(request: Request) -> ExecutionService:
    return request.app.state.execution_service


@router.post(
    "/workflows/{workflow_id}/execute",
    response_model=ExecuteWorkflowResponse,
    response_model_by_alias=True,
    status_code=202,
)
async def execute_workflow(
    workflow_id: str,
    body: ExecuteWorkflowRequest,
    service: ExecutionService = Depends(get_execution_service),
):
    try:
        execution_id = await service.start_execution(workflow_id, body.user_id, body.trigger_output)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ExecuteWorkflowResponse(execution_id=execution_id)


@router.get(
    "/executions/{execution_id}",
    response_model=WorkflowExecutionRecord,
    response_model_by_alias=True,
)
async def get_execution(execution_id: str, service: ExecutionService = Depends(get_execution_service)):
    execution = await service.repository.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution
