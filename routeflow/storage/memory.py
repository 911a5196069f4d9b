"""
In-Memory Storage for workflow runs.

Keeps the record of every run started through the API so clients can
look results up afterwards. Can be replaced with a database implementation.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
from dataclasses import dataclass, field

from routeflow.engine.executor import ExecutionResult


@dataclass
class StoredRun:
    """A stored execution run."""
    run_id: str
    workflow_id: str
    version: int
    status: str
    trigger_payload: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "version": self.version,
            "status": self.status,
            "trigger_payload": self.trigger_payload,
            "result": self.result,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


class RunStorage:
    """
    Thread-safe in-memory storage for execution runs.
    """

    def __init__(self):
        self._runs: Dict[str, StoredRun] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        run_id: str,
        workflow_id: str,
        version: int,
        trigger_payload: Dict[str, Any],
    ) -> StoredRun:
        """
        Create a new run.

        Args:
            run_id: Unique run identifier
            workflow_id: Associated workflow ID
            version: Deployment version being executed
            trigger_payload: Inbound payload

        Returns:
            The stored run
        """
        async with self._lock:
            stored = StoredRun(
                run_id=run_id,
                workflow_id=workflow_id,
                version=version,
                status="running",
                trigger_payload=trigger_payload,
            )
            self._runs[run_id] = stored
            return stored

    async def get(self, run_id: str) -> Optional[StoredRun]:
        """Get a run by ID."""
        async with self._lock:
            return self._runs.get(run_id)

    async def complete(self, run_id: str, result: ExecutionResult) -> Optional[StoredRun]:
        """Record the final result of a run."""
        async with self._lock:
            stored = self._runs.get(run_id)
            if stored is None:
                return None
            stored.status = result.status.value
            stored.result = result.to_dict()
            stored.error = result.error
            stored.completed_at = result.completed_at or datetime.now()
            return stored

    async def list_by_workflow(self, workflow_id: str) -> List[StoredRun]:
        """List all runs for a specific workflow."""
        async with self._lock:
            return [r for r in self._runs.values() if r.workflow_id == workflow_id]

    def __len__(self) -> int:
        return len(self._runs)


# Global storage instance
run_storage = RunStorage()
