"""
Records managed by the Deployment Version Store.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
import uuid


class Permission(str, Enum):
    """Workspace permission levels."""
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


class User(BaseModel):
    """A user who can call the API."""
    id: str
    name: str
    api_key: Optional[str] = None


class WorkflowRecord(BaseModel):
    """The deployable workflow a set of versions belongs to."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workspace_id: str
    owner_id: str
    name: str = "Untitled Workflow"
    is_deployed: bool = False
    deployed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)


class DeploymentVersion(BaseModel):
    """
    An immutable, numbered snapshot of a workflow graph.

    Only ``name`` and ``is_active`` ever change after creation.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    version: int
    name: Optional[str] = None
    state: Dict[str, Any]
    is_active: bool = False
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class DeploymentVersionSummary(BaseModel):
    """A version as listed for a workflow, annotated with its creator's name."""
    id: str
    version: int
    name: Optional[str] = None
    is_active: bool
    created_at: datetime
    created_by: Optional[str] = None
    deployed_by: Optional[str] = None


class AccessContext(BaseModel):
    """What a user may do with one workflow."""
    workflow_id: str
    workspace_id: str
    is_owner: bool = False
    permission: Optional[Permission] = None

    @property
    def can_read(self) -> bool:
        return self.is_owner or self.permission is not None

    @property
    def can_write(self) -> bool:
        return self.is_owner or self.permission in (Permission.WRITE, Permission.ADMIN)
