"""
Deployments package - Versioned workflow snapshots with a single active version.
"""

from routeflow.deployments.models import (
    AccessContext,
    DeploymentVersion,
    DeploymentVersionSummary,
    Permission,
    User,
    WorkflowRecord,
)
from routeflow.deployments.store import DeploymentStore, deployment_store, normalize_version_name

__all__ = [
    "AccessContext",
    "DeploymentVersion",
    "DeploymentVersionSummary",
    "Permission",
    "User",
    "WorkflowRecord",
    "DeploymentStore",
    "deployment_store",
    "normalize_version_name",
]
