"""
Deployment API Routes.

Endpoints for listing, inspecting, renaming, creating and activating the
deployment versions of a workflow.
"""

from fastapi import APIRouter, Depends, status
import logging

from routeflow.api.deps import (
    get_current_user,
    get_store,
    require_read_access,
    require_write_access,
)
from routeflow.api.schemas import (
    ActivateResponse,
    DeployedStateResponse,
    DeploymentListResponse,
    DeploymentVersionInfo,
    DeployRequest,
    ErrorResponse,
    RenameRequest,
    RenameResponse,
)
from routeflow.deployments import AccessContext, DeploymentStore, User


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows/{workflow_id}/deployments", tags=["Deployments"])


@router.get(
    "",
    response_model=DeploymentListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_deployments(
    workflow_id: str,
    access: AccessContext = Depends(require_read_access),
    store: DeploymentStore = Depends(get_store),
) -> DeploymentListResponse:
    """List all deployment versions of a workflow, newest first."""
    versions = await store.list(workflow_id)
    return DeploymentListResponse(
        versions=[DeploymentVersionInfo(**v.model_dump()) for v in versions]
    )


@router.post(
    "",
    response_model=DeploymentVersionInfo,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid workflow state or name"},
        404: {"model": ErrorResponse},
    },
)
async def deploy_workflow(
    workflow_id: str,
    request: DeployRequest,
    access: AccessContext = Depends(require_write_access),
    user: User = Depends(get_current_user),
    store: DeploymentStore = Depends(get_store),
) -> DeploymentVersionInfo:
    """
    Deploy a new version of a workflow.

    The state is validated as a graph (known block kinds, no dangling
    edges) before it is stored.
    """
    row = await store.deploy(
        workflow_id,
        request.state,
        created_by=user.id,
        name=request.name,
        activate=request.activate,
    )
    return DeploymentVersionInfo(
        id=row.id,
        version=row.version,
        name=row.name,
        is_active=row.is_active,
        created_at=row.created_at,
        created_by=row.created_by,
        deployed_by=user.name,
    )


@router.get(
    "/{version}",
    response_model=DeployedStateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_deployment(
    workflow_id: str,
    version: int,
    access: AccessContext = Depends(require_read_access),
    store: DeploymentStore = Depends(get_store),
) -> DeployedStateResponse:
    """Get the graph snapshot stored in one version."""
    row = await store.get(workflow_id, version)
    return DeployedStateResponse(deployed_state=row.state)


@router.patch(
    "/{version}",
    response_model=RenameResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid name"},
        404: {"model": ErrorResponse},
    },
)
async def rename_deployment(
    workflow_id: str,
    version: int,
    request: RenameRequest,
    access: AccessContext = Depends(require_write_access),
    store: DeploymentStore = Depends(get_store),
) -> RenameResponse:
    """Rename a deployment version."""
    name = await store.rename(workflow_id, version, request.name)
    return RenameResponse(name=name)


@router.post(
    "/{version}/activate",
    response_model=ActivateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def activate_deployment(
    workflow_id: str,
    version: int,
    access: AccessContext = Depends(require_write_access),
    store: DeploymentStore = Depends(get_store),
) -> ActivateResponse:
    """Make a version the single active deployment of the workflow."""
    deployed_at = await store.activate(workflow_id, version)
    return ActivateResponse(success=True, deployed_at=deployed_at)
