"""
Execution Context and Block State Store.

Each run gets one ExecutionContext that pairs the read-only WorkflowGraph
with a mutable BlockStateStore. Handlers read upstream outputs from the
store; the orchestrator writes each block's output exactly once.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple
from pydantic import BaseModel, Field
from datetime import datetime
import threading
import uuid

from routeflow.engine.graph import BlockKind, WorkflowGraph
from routeflow.errors import StateConflictError


class BlockState(BaseModel):
    """The recorded output of one block execution."""

    output: Any = None
    executed_at: datetime = Field(default_factory=datetime.now)
    iteration: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.output,
            "executed_at": self.executed_at.isoformat(),
            "iteration": self.iteration,
        }


class BlockStateStore:
    """
    Write-once store of block outputs for a single run.

    Entries are indexed by ``(block_id, iteration)``. Each entry can be
    written exactly once; a second write raises StateConflictError. Blocks
    that run once per run always use iteration 0, and ``get`` returns the
    latest iteration recorded for a block.

    Reads take no lock. Writes are serialized with a lock so concurrent
    writers to distinct keys are safe from threads as well as tasks.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, int], BlockState] = {}
        self._latest: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, block_id: str, iteration: Optional[int] = None) -> Optional[BlockState]:
        """
        Get the state of a block, or None if it has not executed yet.

        Args:
            block_id: Block identifier
            iteration: Specific iteration (defaults to the latest one)
        """
        if iteration is None:
            iteration = self._latest.get(block_id)
            if iteration is None:
                return None
        return self._entries.get((block_id, iteration))

    def get_output(self, block_id: str) -> Any:
        """Shortcut for the latest output of a block (None when absent)."""
        state = self.get(block_id)
        return state.output if state else None

    def set(self, block_id: str, output: Any, iteration: int = 0) -> BlockState:
        """
        Record a block's output.

        Raises:
            StateConflictError: If this (block_id, iteration) was already written
        """
        with self._lock:
            key = (block_id, iteration)
            if key in self._entries:
                raise StateConflictError(block_id, iteration)
            state = BlockState(output=output, iteration=iteration)
            self._entries[key] = state
            if iteration >= self._latest.get(block_id, -1):
                self._latest[block_id] = iteration
            return state

    def has(self, block_id: str) -> bool:
        return block_id in self._latest

    def __contains__(self, block_id: str) -> bool:
        return self.has(block_id)

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Latest state of every block as plain dictionaries."""
        return {
            block_id: self._entries[(block_id, iteration)].to_dict()
            for block_id, iteration in list(self._latest.items())
        }


class ExecutionContext:
    """
    Per-run container exposed to handlers and the router.

    Attributes:
        workflow: The static graph for this run
        block_states: Write-once output store
        run_id: Unique run identifier
        workflow_id: Owning workflow (if any)
        workspace_id: Owning workspace (if any)
    """

    def __init__(
        self,
        workflow: WorkflowGraph,
        run_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
    ):
        self.workflow = workflow
        self.block_states = BlockStateStore()
        self.run_id = run_id or str(uuid.uuid4())
        self.workflow_id = workflow_id
        self.workspace_id = workspace_id
        # router block id -> selected target block id
        self.decisions: Dict[str, str] = {}
        self._decision_lock = threading.Lock()

    def record_decision(self, router_id: str, target_id: str) -> None:
        """Record the single target chosen by a router block."""
        with self._decision_lock:
            existing = self.decisions.get(router_id)
            if existing is not None and existing != target_id:
                raise StateConflictError(router_id, 0)
            self.decisions[router_id] = target_id

    def trigger_payload(self) -> Mapping[str, Any]:
        """
        Output of the chat trigger block, or an empty mapping.

        Safe to call from any handler: if the workflow has no trigger or
        the trigger has not executed yet, nothing is returned.
        """
        trigger = self.workflow.find_by_kind(BlockKind.CHAT_TRIGGER)
        if trigger is None:
            return {}
        output = self.block_states.get_output(trigger.id)
        return output if isinstance(output, Mapping) else {}

    def executed_blocks(self) -> List[str]:
        return [b.id for b in self.workflow.blocks if b.id in self.block_states]

    def tool_context(self) -> Dict[str, Any]:
        """Identifiers forwarded to external tools for attribution."""
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "workspace_id": self.workspace_id,
        }
