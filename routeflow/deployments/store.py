"""
Deployment Version Store.

Keeps the append-only list of deployment versions per workflow and
guarantees that at most one version per workflow is active. Every
mutation of a workflow's versions runs inside a transaction that holds
that workflow's lock and stages its writes; the staged writes are applied
together on success and discarded if anything raises.
"""

from typing import Dict, List, Optional, Tuple
from contextlib import asynccontextmanager
from datetime import datetime
import asyncio
import logging

from routeflow.deployments.models import (
    AccessContext,
    DeploymentVersion,
    DeploymentVersionSummary,
    Permission,
    User,
    WorkflowRecord,
)
from routeflow.engine.graph import WorkflowGraph
from routeflow.errors import ValidationError, VersionNotFoundError, WorkflowNotFoundError


logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


def normalize_version_name(name: object) -> str:
    """
    Trim and validate a version name.

    Raises:
        ValidationError: If the name is not a string of 1-100 characters once trimmed
    """
    if not isinstance(name, str):
        raise ValidationError("Name must be a string")
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Name cannot be empty")
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be {MAX_NAME_LENGTH} characters or less")
    return trimmed


class _Transaction:
    """Staged writes against one workflow's versions."""

    def __init__(self, store: "DeploymentStore", workflow_id: str):
        self._store = store
        self.workflow_id = workflow_id
        self._rows: Dict[str, DeploymentVersion] = {}
        self._appended: List[DeploymentVersion] = []
        self._workflow: Optional[WorkflowRecord] = None

    def rows(self) -> List[DeploymentVersion]:
        """Current view of the workflow's versions, staged writes included."""
        committed = self._store._versions.get(self.workflow_id, [])
        return [self._rows.get(row.id, row) for row in committed] + list(self._appended)

    def find(self, version: int) -> Optional[DeploymentVersion]:
        for row in self.rows():
            if row.version == version:
                return row
        return None

    def update(self, row: DeploymentVersion, **changes) -> DeploymentVersion:
        updated = row.model_copy(update=changes)
        for i, pending in enumerate(self._appended):
            if pending.id == row.id:
                self._appended[i] = updated
                return updated
        self._rows[row.id] = updated
        return updated

    def append(self, row: DeploymentVersion) -> DeploymentVersion:
        self._appended.append(row)
        return row

    def deactivate_all(self) -> None:
        for row in self.rows():
            if row.is_active:
                self.update(row, is_active=False)

    def mark_deployed(self, deployed_at: datetime) -> None:
        workflow = self._store._workflows.get(self.workflow_id)
        if workflow is not None:
            self._workflow = workflow.model_copy(
                update={"is_deployed": True, "deployed_at": deployed_at}
            )

    def commit(self) -> None:
        committed = self._store._versions.setdefault(self.workflow_id, [])
        self._store._versions[self.workflow_id] = (
            [self._rows.get(row.id, row) for row in committed] + self._appended
        )
        if self._workflow is not None:
            self._store._workflows[self.workflow_id] = self._workflow


class DeploymentStore:
    """
    In-memory store for workflows, their deployment versions and the users
    allowed to manage them.

    Usage:
        store = DeploymentStore()
        workflow = await store.create_workflow("ws-1", owner_id="u-1")
        v1 = await store.deploy(workflow.id, state, created_by="u-1")
        await store.activate(workflow.id, v1.version)
    """

    def __init__(self):
        self._workflows: Dict[str, WorkflowRecord] = {}
        self._versions: Dict[str, List[DeploymentVersion]] = {}
        self._users: Dict[str, User] = {}
        self._permissions: Dict[Tuple[str, str], Permission] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    def _workflow_lock(self, workflow_id: str) -> asyncio.Lock:
        return self._locks.setdefault(workflow_id, asyncio.Lock())

    @asynccontextmanager
    async def transaction(self, workflow_id: str):
        """
        Serialize all version writes of a workflow and apply them atomically.

        Writes staged on the yielded transaction are committed together when
        the block exits normally and dropped if it raises.
        """
        async with self._workflow_lock(workflow_id):
            tx = _Transaction(self, workflow_id)
            yield tx
            tx.commit()

    # ============================================================
    # Deployment Versions
    # ============================================================

    async def deploy(
        self,
        workflow_id: str,
        state: Dict,
        created_by: Optional[str] = None,
        name: Optional[str] = None,
        activate: bool = True,
    ) -> DeploymentVersion:
        """
        Append a new version holding ``state``.

        The version number is one more than the highest existing one. With
        ``activate`` the new version also becomes the single active version
        in the same transaction.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            ValidationError: If ``state`` is not a valid graph or the name is invalid
        """
        if workflow_id not in self._workflows:
            raise WorkflowNotFoundError(workflow_id)
        WorkflowGraph.from_dict(state)
        if name is not None:
            name = normalize_version_name(name)

        now = datetime.now()
        async with self.transaction(workflow_id) as tx:
            next_version = max((row.version for row in tx.rows()), default=0) + 1
            row = tx.append(DeploymentVersion(
                workflow_id=workflow_id,
                version=next_version,
                name=name,
                state=state,
                created_by=created_by,
                created_at=now,
            ))
            if activate:
                tx.deactivate_all()
                row = tx.update(row, is_active=True)
                tx.mark_deployed(now)

        logger.info(f"Deployed version {row.version} of workflow {workflow_id} (active={activate})")
        return row

    async def activate(self, workflow_id: str, version: int) -> datetime:
        """
        Make ``version`` the single active version of the workflow.

        Clears the current active version, activates the target and marks the
        workflow deployed, all in one transaction.

        Returns:
            The deployment timestamp

        Raises:
            VersionNotFoundError: If the version does not exist; nothing changes
        """
        now = datetime.now()
        async with self.transaction(workflow_id) as tx:
            tx.deactivate_all()
            target = tx.find(version)
            if target is None:
                raise VersionNotFoundError(workflow_id, version)
            tx.update(target, is_active=True)
            tx.mark_deployed(now)

        logger.info(f"Activated version {version} of workflow {workflow_id}")
        return now

    async def rename(self, workflow_id: str, version: int, name: object) -> str:
        """
        Rename a version.

        Returns:
            The stored (trimmed) name

        Raises:
            ValidationError: If the trimmed name is empty or longer than 100 characters
            VersionNotFoundError: If the version does not exist
        """
        trimmed = normalize_version_name(name)
        async with self.transaction(workflow_id) as tx:
            target = tx.find(version)
            if target is None:
                raise VersionNotFoundError(workflow_id, version)
            tx.update(target, name=trimmed)

        logger.info(f"Renamed version {version} of workflow {workflow_id} to \"{trimmed}\"")
        return trimmed

    async def list(self, workflow_id: str) -> List[DeploymentVersionSummary]:
        """All versions of a workflow, newest first, with the creator's display name."""
        rows = sorted(self._versions.get(workflow_id, []), key=lambda r: r.version, reverse=True)
        summaries = []
        for row in rows:
            creator = self._users.get(row.created_by) if row.created_by else None
            summaries.append(DeploymentVersionSummary(
                id=row.id,
                version=row.version,
                name=row.name,
                is_active=row.is_active,
                created_at=row.created_at,
                created_by=row.created_by,
                deployed_by=creator.name if creator else None,
            ))
        return summaries

    async def get(self, workflow_id: str, version: int) -> DeploymentVersion:
        """
        Get one version.

        Raises:
            VersionNotFoundError: If the version does not exist
        """
        for row in self._versions.get(workflow_id, []):
            if row.version == version:
                return row
        raise VersionNotFoundError(workflow_id, version)

    async def get_active(self, workflow_id: str) -> Optional[DeploymentVersion]:
        """The active version, if any."""
        for row in self._versions.get(workflow_id, []):
            if row.is_active:
                return row
        return None

    # ============================================================
    # Workflows, Users and Permissions
    # ============================================================

    async def create_workflow(
        self,
        workspace_id: str,
        owner_id: str,
        name: str = "Untitled Workflow",
        workflow_id: Optional[str] = None,
    ) -> WorkflowRecord:
        """Register a workflow."""
        async with self._lock:
            fields = {"workspace_id": workspace_id, "owner_id": owner_id, "name": name}
            if workflow_id:
                fields["id"] = workflow_id
            record = WorkflowRecord(**fields)
            if record.id in self._workflows:
                raise ValidationError(f"Workflow '{record.id}' already exists")
            self._workflows[record.id] = record
            self._versions.setdefault(record.id, [])
            return record

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        """Get a workflow by ID."""
        return self._workflows.get(workflow_id)

    async def add_user(self, user_id: str, name: str, api_key: Optional[str] = None) -> User:
        """Register a user, optionally with an API key."""
        async with self._lock:
            user = User(id=user_id, name=name, api_key=api_key)
            self._users[user_id] = user
            return user

    async def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        """Resolve an API key to its user."""
        if not api_key:
            return None
        for user in self._users.values():
            if user.api_key == api_key:
                return user
        return None

    async def grant(self, workspace_id: str, user_id: str, permission: Permission) -> None:
        """Give a user a permission level in a workspace."""
        async with self._lock:
            self._permissions[(workspace_id, user_id)] = Permission(permission)

    async def access_context(self, workflow_id: str, user_id: str) -> Optional[AccessContext]:
        """
        Resolve what ``user_id`` may do with a workflow.

        Returns:
            None if the workflow does not exist
        """
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            return None
        return AccessContext(
            workflow_id=workflow.id,
            workspace_id=workflow.workspace_id,
            is_owner=workflow.owner_id == user_id,
            permission=self._permissions.get((workflow.workspace_id, user_id)),
        )

    def __len__(self) -> int:
        return len(self._workflows)


# Global store instance
deployment_store = DeploymentStore()
