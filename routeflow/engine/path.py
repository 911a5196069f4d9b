"""
Path Tracker.

Answers the graph questions a router block needs (who came before me,
where can I go) and records which single outgoing edge a router took,
so the orchestrator can prune every other branch of that router.
"""

from typing import Any, Dict, List, Optional, Set
from dataclasses import dataclass, field
import logging

from routeflow.engine.graph import Block, Edge, WorkflowGraph
from routeflow.engine.state import ExecutionContext
from routeflow.errors import ValidationError


logger = logging.getLogger(__name__)


@dataclass
class CandidateBlock:
    """Descriptor of a block a router may send execution to."""
    id: str
    type: str
    title: str
    description: str
    config: Dict[str, Any] = field(default_factory=dict)
    current_state: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "config": self.config,
        }
        if self.current_state is not None:
            data["current_state"] = self.current_state
        return data


class PathTracker:
    """
    Tracks the live paths of a run through router blocks.

    Usage:
        tracker = PathTracker(graph)
        candidates = tracker.candidates(router, context)
        tracker.select(router, candidates[0].id, context)
        tracker.is_edge_active(edge, context)
    """

    def __init__(self, graph: WorkflowGraph):
        self.graph = graph

    def predecessor_ids(self, block_id: str) -> Set[str]:
        """Direct predecessors only; transitive ancestors are not included."""
        return set(self.graph.predecessors(block_id))

    def candidate_ids(self, block_id: str) -> List[str]:
        """Outgoing targets of a block minus its direct predecessors, deduplicated."""
        previous = self.predecessor_ids(block_id)
        return [t for t in self.graph.successors(block_id) if t not in previous]

    def candidates(self, router: Block, context: ExecutionContext) -> List[CandidateBlock]:
        """
        Describe every block the router may select.

        ``current_state`` is filled in for candidates that already have an
        output in this run.
        """
        described = []
        for target_id in self.candidate_ids(router.id):
            target = self.graph.get_block(target_id)
            if target is None:
                raise ValidationError(f"Target block {target_id} not found")
            state = context.block_states.get(target_id)
            described.append(CandidateBlock(
                id=target.id,
                type=target.kind.value,
                title=target.title,
                description=target.description,
                config=dict(target.config),
                current_state=state.output if state else None,
            ))
        return described

    def select(self, router: Block, target_id: str, context: ExecutionContext) -> None:
        """Mark the router's edge(s) to ``target_id`` as the only taken path."""
        if target_id not in self.candidate_ids(router.id):
            raise ValidationError(
                f"Block '{target_id}' is not a routing candidate of '{router.id}'"
            )
        context.record_decision(router.id, target_id)
        logger.info(f"Router {router.id} selected path -> {target_id}")

    def selected_target(self, router_id: str, context: ExecutionContext) -> Optional[str]:
        return context.decisions.get(router_id)

    def is_edge_active(self, edge: Edge, context: ExecutionContext) -> bool:
        """
        Whether execution flows along ``edge`` once its source has completed.

        Edges leaving ordinary blocks are always active. Edges leaving a
        router are active only towards the recorded selection; an undecided
        router activates nothing.
        """
        source = self.graph.get_block(edge.source)
        if source is None or not source.is_router:
            return True
        return context.decisions.get(source.id) == edge.target

    def active_targets(self, block_id: str, context: ExecutionContext) -> List[str]:
        """Deduplicated targets reached through active outgoing edges."""
        targets: List[str] = []
        for edge in self.graph.outgoing(block_id):
            if edge.target not in targets and self.is_edge_active(edge, context):
                targets.append(edge.target)
        return targets
