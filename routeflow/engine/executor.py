"""
Async Workflow Executor.

Walks a WorkflowGraph for one run: dispatches every reached block to its
handler, records outputs in the Block State Store, follows only the edge a
router selected, and runs independent branches concurrently. A failed block
aborts everything causally downstream of it while sibling branches keep
running.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import asyncio
import time
import logging

from routeflow.engine.graph import Block, Edge, WorkflowGraph
from routeflow.engine.handlers.registry import HandlerRegistry
from routeflow.engine.path import PathTracker
from routeflow.engine.state import ExecutionContext
from routeflow.errors import RouteFlowError


# Configure logging
logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BlockOutcome(str, Enum):
    """How a block ended up in a run."""
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"    # An upstream block failed
    PRUNED = "pruned"      # Not on the path a router selected


@dataclass
class ExecutionStep:
    """A single executed block in the execution log."""
    step: int
    block_id: str
    block_kind: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: str = BlockOutcome.SUCCESS.value
    error: Optional[Dict[str, Any]] = None
    route_taken: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "block_id": self.block_id,
            "block_kind": self.block_kind,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "route_taken": self.route_taken,
        }


@dataclass
class ExecutionResult:
    """Result of a workflow execution."""
    run_id: str
    workflow_id: Optional[str]
    status: ExecutionStatus
    block_states: Dict[str, Dict[str, Any]]
    execution_log: List[ExecutionStep] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "block_states": self.block_states,
            "execution_log": [step.to_dict() for step in self.execution_log],
            "skipped": self.skipped,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
            "error": self.error,
        }


class Executor:
    """
    Async workflow executor.

    A block becomes ready once every dependency edge into it is resolved.
    It runs if at least one of those edges is active, is pruned if none is,
    and is aborted if any of its sources failed or was aborted. Edges that
    point back to an ancestor are not dependencies and are never followed.

    Usage:
        executor = Executor(graph, registry)
        result = await executor.run({"content": "hi", "app_id": "..."})
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        registry: HandlerRegistry,
        run_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        on_step: Optional[Callable[[ExecutionStep, ExecutionContext], None]] = None,
    ):
        """
        Initialize the executor.

        Args:
            graph: The workflow graph to execute
            registry: Handler registry used for dispatch
            run_id: Optional run ID (generated if not provided)
            workflow_id: Owning workflow, forwarded to tools
            workspace_id: Owning workspace, forwarded to tools
            on_step: Optional callback invoked after each executed block
        """
        self.graph = graph
        self.registry = registry
        self.context = ExecutionContext(
            graph, run_id=run_id, workflow_id=workflow_id, workspace_id=workspace_id
        )
        self.path_tracker = PathTracker(graph)
        self.on_step = on_step

        self._status = ExecutionStatus.PENDING
        self._execution_log: List[ExecutionStep] = []
        self._step_counter = 0
        self._outcomes: Dict[str, BlockOutcome] = {}
        self._skipped: Dict[str, str] = {}
        self._errors: List[Dict[str, Any]] = []

        back_edges = graph.back_edges()
        for edge_id in back_edges:
            logger.debug(f"Ignoring back-edge {edge_id}")
        self._dependencies: Dict[str, List[Edge]] = {
            b.id: [e for e in graph.incoming(b.id) if e.id not in back_edges]
            for b in graph.blocks
        }
        self._dependents: Dict[str, List[Edge]] = {
            b.id: [e for e in graph.outgoing(b.id) if e.id not in back_edges]
            for b in graph.blocks
        }
        self._resolved_sources: Dict[str, Set[str]] = {b.id: set() for b in graph.blocks}

    @property
    def run_id(self) -> str:
        return self.context.run_id

    @property
    def status(self) -> ExecutionStatus:
        """Get the current execution status."""
        return self._status

    async def run(self, trigger_payload: Optional[Mapping[str, Any]] = None) -> ExecutionResult:
        """
        Execute the workflow.

        Args:
            trigger_payload: Inbound data merged into the inputs of entry blocks

        Returns:
            ExecutionResult with block states, logs and per-block errors
        """
        start_time = time.time()
        started_at = datetime.now()
        self._status = ExecutionStatus.RUNNING
        payload = dict(trigger_payload or {})

        entries = [b for b in self.graph.blocks if not self._dependencies[b.id]]
        if not entries:
            return self._create_result(started_at, start_time, "Workflow has no entry block")

        tasks: Set[asyncio.Task] = set()
        try:
            for block in entries:
                tasks.add(self._spawn(block, {**block.config, **payload}))

            while tasks:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    tasks.discard(task)
                    block_id = task.result()
                    for ready in self._resolve_dependents(block_id):
                        tasks.add(self._spawn(ready, dict(ready.config)))
        except Exception as e:
            logger.exception(f"Execution failed: {e}")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            return self._create_result(started_at, start_time, str(e))

        return self._create_result(started_at, start_time)

    def _spawn(self, block: Block, inputs: Dict[str, Any]) -> asyncio.Task:
        return asyncio.ensure_future(self._execute_block(block, inputs))

    async def _execute_block(self, block: Block, inputs: Dict[str, Any]) -> str:
        """Execute a single block and record its outcome; returns the block id."""
        self._step_counter += 1
        step = ExecutionStep(
            step=self._step_counter,
            block_id=block.id,
            block_kind=block.kind.value,
            started_at=datetime.now(),
        )
        block_start_time = time.time()

        try:
            output = await self.registry.dispatch(block, inputs, self.context)
            self.context.block_states.set(block.id, output)
            self._outcomes[block.id] = BlockOutcome.SUCCESS
            if block.is_router:
                step.route_taken = self.path_tracker.selected_target(block.id, self.context)
        except RouteFlowError as e:
            logger.error(f"Block {block.id} failed: {e}")
            self._outcomes[block.id] = BlockOutcome.ERROR
            step.result = BlockOutcome.ERROR.value
            step.error = e.to_dict()
            self._errors.append({"block_id": block.id, **e.to_dict()})

        step.completed_at = datetime.now()
        step.duration_ms = (time.time() - block_start_time) * 1000
        self._execution_log.append(step)

        if self.on_step:
            try:
                self.on_step(step, self.context)
            except Exception as e:
                logger.warning(f"Step callback failed: {e}")

        return block.id

    def _resolve_dependents(self, block_id: str) -> List[Block]:
        """
        Propagate a finished block to its dependents.

        Returns the blocks that became ready to run. Pruned and aborted
        blocks are resolved here too, cascading through their own dependents.
        """
        ready: List[Block] = []
        worklist = [block_id]

        while worklist:
            source_id = worklist.pop()
            for edge in self._dependents[source_id]:
                target_id = edge.target
                sources = self._resolved_sources[target_id]
                if source_id in sources:
                    continue
                sources.add(source_id)

                needed = {e.source for e in self._dependencies[target_id]}
                if sources != needed:
                    continue

                outcome = self._readiness(target_id)
                if outcome is None:
                    ready.append(self.graph.get_block(target_id))
                    continue

                self._outcomes[target_id] = outcome
                reason = (
                    "upstream block failed" if outcome == BlockOutcome.ABORTED
                    else "not on the selected path"
                )
                self._skipped[target_id] = reason
                logger.info(f"Skipping block {target_id}: {reason}")
                worklist.append(target_id)

        return ready

    def _readiness(self, block_id: str) -> Optional[BlockOutcome]:
        """None when the block should run, otherwise the skip outcome."""
        active = False
        for edge in self._dependencies[block_id]:
            outcome = self._outcomes.get(edge.source)
            if outcome in (BlockOutcome.ERROR, BlockOutcome.ABORTED):
                return BlockOutcome.ABORTED
            if outcome == BlockOutcome.SUCCESS and self.path_tracker.is_edge_active(edge, self.context):
                active = True
        return None if active else BlockOutcome.PRUNED

    def _create_result(
        self,
        started_at: datetime,
        start_time: float,
        error: Optional[str] = None,
    ) -> ExecutionResult:
        if error is None and self._errors:
            error = self._errors[0]["message"]
        self._status = ExecutionStatus.FAILED if error else ExecutionStatus.COMPLETED

        return ExecutionResult(
            run_id=self.run_id,
            workflow_id=self.context.workflow_id,
            status=self._status,
            block_states=self.context.block_states.snapshot(),
            execution_log=self._execution_log,
            skipped=dict(self._skipped),
            errors=list(self._errors),
            started_at=started_at,
            completed_at=datetime.now(),
            total_duration_ms=(time.time() - start_time) * 1000,
            error=error,
        )

    def get_execution_summary(self) -> Dict[str, Any]:
        """Get a summary of the current execution."""
        return {
            "run_id": self.run_id,
            "workflow_id": self.context.workflow_id,
            "status": self._status.value,
            "executed_blocks": self.context.executed_blocks(),
            "step_count": self._step_counter,
        }


async def execute_workflow(
    graph: WorkflowGraph,
    registry: HandlerRegistry,
    trigger_payload: Optional[Mapping[str, Any]] = None,
    run_id: Optional[str] = None,
    workflow_id: Optional[str] = None,
    workspace_id: Optional[str] = None,
    on_step: Optional[Callable] = None,
) -> ExecutionResult:
    """
    Convenience function to execute a workflow graph.

    Args:
        graph: The workflow graph
        registry: Handler registry used for dispatch
        trigger_payload: Inbound data for the entry blocks
        run_id: Optional run ID
        workflow_id: Owning workflow
        workspace_id: Owning workspace
        on_step: Optional step callback

    Returns:
        ExecutionResult
    """
    executor = Executor(graph, registry, run_id, workflow_id, workspace_id, on_step)
    return await executor.run(trigger_payload)
