"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from routeflow.engine.executor import ExecutionStatus


# ============================================================
# Workflow Schemas
# ============================================================

class WorkflowCreateRequest(BaseModel):
    """Request to register a new workflow."""
    name: str = Field("Untitled Workflow", description="Name of the workflow")
    workspace_id: str = Field(..., description="Workspace that owns the workflow")


class WorkflowInfoResponse(BaseModel):
    """Response with workflow information."""
    id: str
    workspace_id: str
    owner_id: str
    name: str
    is_deployed: bool
    deployed_at: Optional[datetime] = None
    created_at: datetime


# ============================================================
# Deployment Schemas
# ============================================================

class DeploymentVersionInfo(BaseModel):
    """A deployment version as listed for a workflow."""
    id: str
    version: int
    name: Optional[str] = None
    is_active: bool
    created_at: datetime
    created_by: Optional[str] = None
    deployed_by: Optional[str] = None


class DeploymentListResponse(BaseModel):
    """All versions of a workflow, newest first."""
    versions: List[DeploymentVersionInfo]


class DeployRequest(BaseModel):
    """Request to deploy a new version of a workflow."""
    state: Dict[str, Any] = Field(..., description="Graph snapshot: {blocks: [...], edges: [...]}")
    name: Optional[str] = Field(None, description="Optional version name (1-100 characters)")
    activate: bool = Field(True, description="Make the new version the active one")

    class Config:
        json_schema_extra = {
            "example": {
                "state": {
                    "blocks": [
                        {"id": "trigger", "kind": "chat_trigger", "title": "Chat"},
                        {"id": "router", "kind": "intent_router", "title": "Router",
                         "config": {"bot_profile": "router-bot", "user_input": "hello"}},
                        {"id": "faq", "kind": "bot_assistant", "title": "FAQ",
                         "config": {"prompt": "Answer the question"}},
                    ],
                    "edges": [
                        {"id": "e1", "source": "trigger", "target": "router"},
                        {"id": "e2", "source": "router", "target": "faq"},
                    ],
                },
                "name": "First release",
                "activate": True,
            }
        }


class DeployedStateResponse(BaseModel):
    """The graph snapshot stored in one version."""
    deployed_state: Dict[str, Any] = Field(..., alias="deployedState")

    class Config:
        populate_by_name = True


class RenameRequest(BaseModel):
    """Request to rename a deployment version."""
    name: Any = Field(..., description="New name, 1-100 characters once trimmed")


class RenameResponse(BaseModel):
    name: str


class ActivateResponse(BaseModel):
    """Response after activating a version."""
    success: bool
    deployed_at: datetime = Field(..., alias="deployedAt")

    class Config:
        populate_by_name = True


# ============================================================
# Run Schemas
# ============================================================

class ExecuteRequest(BaseModel):
    """Request to execute a deployed workflow."""
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Inbound chat payload handed to the trigger block",
    )
    version: Optional[int] = Field(
        None,
        description="Version to run (defaults to the active version)",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "payload": {
                    "content": "Where is my order?",
                    "app_id": "app-123",
                    "api_token": "token",
                    "channel_url": "channel-1",
                    "bot_user_id": "bot-user",
                },
            }
        }


class ExecutionLogEntry(BaseModel):
    """A single executed block in the execution log."""
    step: int
    block_id: str
    block_kind: str
    started_at: str
    completed_at: Optional[str]
    duration_ms: Optional[float]
    result: str
    error: Optional[Dict[str, Any]] = None
    route_taken: Optional[str] = None


class RunResponse(BaseModel):
    """Result of a workflow run."""
    run_id: str = Field(..., description="Unique identifier for this run")
    workflow_id: str
    version: int
    status: ExecutionStatus
    block_states: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    execution_log: List[ExecutionLogEntry] = Field(default_factory=list)
    skipped: Dict[str, str] = Field(default_factory=dict)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    total_duration_ms: Optional[float] = None
    error: Optional[str] = None


# ============================================================
# Tool Schemas
# ============================================================

class ToolInfo(BaseModel):
    """Information about a registered tool."""
    id: str
    name: str
    description: str
    parameters: Dict[str, str]


class ToolListResponse(BaseModel):
    """Response listing all registered tools."""
    tools: List[ToolInfo]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
