"""
Workflow and Run API Routes.

Endpoints for registering workflows, executing their deployed versions
and looking up run results.
"""

from uuid import uuid4
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
import logging

from routeflow.api.deps import (
    get_current_user,
    get_handler_registry,
    get_run_storage,
    get_store,
    require_read_access,
    require_write_access,
)
from routeflow.api.schemas import (
    ErrorResponse,
    ExecuteRequest,
    RunResponse,
    WorkflowCreateRequest,
    WorkflowInfoResponse,
)
from routeflow.deployments import AccessContext, DeploymentStore, User
from routeflow.engine.executor import Executor
from routeflow.engine.graph import WorkflowGraph
from routeflow.engine.handlers import HandlerRegistry
from routeflow.storage.memory import RunStorage, StoredRun


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Workflows"])


def _run_response(stored: StoredRun) -> RunResponse:
    result = stored.result or {}
    return RunResponse(
        run_id=stored.run_id,
        workflow_id=stored.workflow_id,
        version=stored.version,
        status=stored.status,
        block_states=result.get("block_states", {}),
        execution_log=result.get("execution_log", []),
        skipped=result.get("skipped", {}),
        errors=result.get("errors", []),
        started_at=result.get("started_at") or stored.started_at.isoformat(),
        completed_at=result.get("completed_at"),
        total_duration_ms=result.get("total_duration_ms"),
        error=stored.error,
    )


@router.post(
    "/workflows",
    response_model=WorkflowInfoResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_workflow(
    request: WorkflowCreateRequest,
    user: User = Depends(get_current_user),
    store: DeploymentStore = Depends(get_store),
) -> WorkflowInfoResponse:
    """Register a workflow owned by the caller."""
    record = await store.create_workflow(request.workspace_id, owner_id=user.id, name=request.name)
    logger.info(f"Created workflow: {record.id} ({record.name})")
    return WorkflowInfoResponse(**record.model_dump())


@router.get(
    "/workflows/{workflow_id}",
    response_model=WorkflowInfoResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_workflow(
    workflow_id: str,
    access: AccessContext = Depends(require_read_access),
    store: DeploymentStore = Depends(get_store),
) -> WorkflowInfoResponse:
    """Get information about a workflow."""
    record = await store.get_workflow(workflow_id)
    return WorkflowInfoResponse(**record.model_dump())


@router.post(
    "/workflows/{workflow_id}/execute",
    response_model=RunResponse,
    responses={
        404: {"model": ErrorResponse, "description": "No deployed version"},
    },
)
async def execute_workflow(
    workflow_id: str,
    request: ExecuteRequest,
    access: AccessContext = Depends(require_write_access),
    store: DeploymentStore = Depends(get_store),
    runs: RunStorage = Depends(get_run_storage),
    registry: HandlerRegistry = Depends(get_handler_registry),
) -> RunResponse:
    """
    Execute a deployed version of a workflow.

    Runs the active version unless a specific version is requested. Block
    failures are reported in the run result rather than as an HTTP error.
    """
    if request.version is not None:
        deployment = await store.get(workflow_id, request.version)
    else:
        deployment = await store.get_active(workflow_id)
        if deployment is None:
            raise HTTPException(
                status_code=404,
                detail=f"Workflow '{workflow_id}' has no active deployment",
            )

    graph = WorkflowGraph.from_dict(deployment.state)
    run_id = str(uuid4())
    await runs.create(run_id, workflow_id, deployment.version, request.payload)

    executor = Executor(
        graph,
        registry,
        run_id=run_id,
        workflow_id=workflow_id,
        workspace_id=access.workspace_id,
    )
    result = await executor.run(request.payload)
    stored = await runs.complete(run_id, result)

    logger.info(f"Run {run_id} of workflow {workflow_id} v{deployment.version}: {result.status.value}")
    return _run_response(stored)


@router.get(
    "/runs/{run_id}",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run(
    run_id: str,
    user: User = Depends(get_current_user),
    store: DeploymentStore = Depends(get_store),
    runs: RunStorage = Depends(get_run_storage),
) -> RunResponse:
    """Get the result of a run."""
    stored = await runs.get(run_id)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")

    access = await store.access_context(stored.workflow_id, user.id)
    if access is None or not access.can_read:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")

    return _run_response(stored)


@router.get(
    "/workflows/{workflow_id}/runs",
    response_model=List[RunResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_runs(
    workflow_id: str,
    access: AccessContext = Depends(require_read_access),
    runs: RunStorage = Depends(get_run_storage),
) -> List[RunResponse]:
    """List the runs of a workflow, newest first."""
    stored = await runs.list_by_workflow(workflow_id)
    stored.sort(key=lambda r: r.started_at, reverse=True)
    return [_run_response(r) for r in stored]
