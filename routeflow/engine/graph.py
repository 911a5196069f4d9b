"""
Graph Model for the Workflow Engine.

A WorkflowGraph is the static, read-only description of one workflow
snapshot: an ordered list of typed blocks and the directed edges between
them. Graphs are built once (from a deployment snapshot or in code) and
never mutated while a run is in progress.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from routeflow.errors import ValidationError


class BlockKind(str, Enum):
    """Closed set of block kinds a handler can be registered for."""
    CHAT_TRIGGER = "chat_trigger"      # Entry point carrying the inbound chat payload
    BOT_ASSISTANT = "bot_assistant"    # Asks a bot a prompt
    CHAT_RESPONSE = "chat_response"    # Replies into the chat channel
    INTENT_ROUTER = "intent_router"    # Picks exactly one outgoing edge

    @classmethod
    def parse(cls, value: Any) -> "BlockKind":
        """Resolve a serialized kind, rejecting anything outside the enumeration."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Unknown block kind '{value}'. "
                f"Expected one of: {[k.value for k in cls]}"
            ) from None


ROUTER_KINDS = frozenset({BlockKind.INTENT_ROUTER})


@dataclass(frozen=True)
class Block:
    """
    A single executable unit of a workflow.

    Attributes:
        id: Unique identifier within the graph
        kind: Block kind, used purely for handler dispatch
        title: Display name
        description: Human-readable description
        config: Resolved, flat parameter mapping (read-only)
    """

    id: str
    kind: BlockKind
    title: str = ""
    description: str = ""
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Block id cannot be empty")
        if not isinstance(self.id, str):
            raise ValidationError(f"Block id must be a string, got {type(self.id).__name__}")
        if not isinstance(self.config, Mapping):
            raise ValidationError(f"Block '{self.id}' config must be an object")
        object.__setattr__(self, "kind", BlockKind.parse(self.kind))
        object.__setattr__(self, "config", MappingProxyType(dict(self.config)))

    @property
    def name(self) -> str:
        """Display name, falling back to the kind when no title is set."""
        return self.title or self.kind.value.replace("_", " ").title()

    @property
    def is_router(self) -> bool:
        return self.kind in ROUTER_KINDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "config": dict(self.config),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Block":
        return cls(
            id=data.get("id", ""),
            kind=data.get("kind", data.get("type")),
            title=data.get("title") or data.get("name") or "",
            description=data.get("description") or "",
            config=data.get("config") or {},
        )


@dataclass(frozen=True)
class Edge:
    """A directed connection from one block's output to another block's input."""
    id: str
    source: str
    target: str

    def __post_init__(self):
        for end in ("source", "target"):
            if not isinstance(getattr(self, end), str):
                raise ValidationError(f"Edge '{self.id}' {end} must be a block id string")

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "source": self.source, "target": self.target}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Edge":
        source = data.get("source", "")
        target = data.get("target", "")
        return cls(id=data.get("id") or f"{source}->{target}", source=source, target=target)


class WorkflowGraph:
    """
    An ordered collection of blocks and edges for one workflow snapshot.

    Invariant: every edge's source and target refer to a block present in
    the same graph. Violations raise ValidationError at construction time.

    Usage:
        graph = WorkflowGraph(
            blocks=[Block("t", BlockKind.CHAT_TRIGGER), Block("r", BlockKind.INTENT_ROUTER)],
            edges=[Edge("e1", "t", "r")],
        )
        graph.predecessors("r")  # ["t"]
    """

    def __init__(self, blocks: Iterable[Block] = (), edges: Iterable[Edge] = ()):
        self._blocks: List[Block] = list(blocks)
        self._edges: List[Edge] = list(edges)
        self._by_id: Dict[str, Block] = {}
        self._incoming: Dict[str, List[Edge]] = {}
        self._outgoing: Dict[str, List[Edge]] = {}

        for block in self._blocks:
            if block.id in self._by_id:
                raise ValidationError(f"Duplicate block id '{block.id}'")
            self._by_id[block.id] = block
            self._incoming[block.id] = []
            self._outgoing[block.id] = []

        for edge in self._edges:
            if edge.source not in self._by_id:
                raise ValidationError(
                    f"Edge '{edge.id}' source '{edge.source}' is not a block in this graph"
                )
            if edge.target not in self._by_id:
                raise ValidationError(
                    f"Edge '{edge.id}' target '{edge.target}' is not a block in this graph"
                )
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)

    @property
    def blocks(self) -> List[Block]:
        return list(self._blocks)

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def get_block(self, block_id: str) -> Optional[Block]:
        """Get a block by id."""
        return self._by_id.get(block_id)

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._by_id

    def __len__(self) -> int:
        return len(self._blocks)

    def incoming(self, block_id: str) -> List[Edge]:
        """Edges whose target is the given block."""
        return list(self._incoming.get(block_id, []))

    def outgoing(self, block_id: str) -> List[Edge]:
        """Edges whose source is the given block."""
        return list(self._outgoing.get(block_id, []))

    def predecessors(self, block_id: str) -> List[str]:
        """Direct predecessors of a block, deduplicated in edge order."""
        return _unique(edge.source for edge in self._incoming.get(block_id, []))

    def successors(self, block_id: str) -> List[str]:
        """Direct successors of a block, deduplicated in edge order."""
        return _unique(edge.target for edge in self._outgoing.get(block_id, []))

    def entry_blocks(self) -> List[Block]:
        """Blocks without incoming edges."""
        return [b for b in self._blocks if not self._incoming[b.id]]

    def find_by_kind(self, kind: BlockKind) -> Optional[Block]:
        """First block of the given kind, in graph order."""
        for block in self._blocks:
            if block.kind == kind:
                return block
        return None

    def back_edges(self) -> Set[str]:
        """
        Ids of edges that point back to an ancestor on some path from an entry block.

        Found by iterative DFS from the entry blocks (or from every block if
        the graph has no entry block at all).
        """
        WHITE, GREY, BLACK = 0, 1, 2
        color = {block_id: WHITE for block_id in self._by_id}
        found: Set[str] = set()

        roots = [b.id for b in self.entry_blocks()] or [b.id for b in self._blocks]
        roots += [b.id for b in self._blocks if b.id not in roots]

        for root in roots:
            if color[root] != WHITE:
                continue
            color[root] = GREY
            stack = [(root, iter(self._outgoing[root]))]
            while stack:
                node, edges = stack[-1]
                advanced = False
                for edge in edges:
                    state = color[edge.target]
                    if state == GREY:
                        found.add(edge.id)
                    elif state == WHITE:
                        color[edge.target] = GREY
                        stack.append((edge.target, iter(self._outgoing[edge.target])))
                        advanced = True
                        break
                if not advanced:
                    color[node] = BLACK
                    stack.pop()

        return found

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to the deployment snapshot shape."""
        return {
            "blocks": [b.to_dict() for b in self._blocks],
            "edges": [e.to_dict() for e in self._edges],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowGraph":
        """
        Build a graph from a serialized snapshot.

        Raises:
            ValidationError: On malformed blocks, unknown kinds or dangling edges
        """
        if not isinstance(data, Mapping):
            raise ValidationError("Workflow state must be an object")
        raw_blocks = data.get("blocks") or []
        raw_edges = data.get("edges") or []
        if not isinstance(raw_blocks, list) or not isinstance(raw_edges, list):
            raise ValidationError("Workflow state 'blocks' and 'edges' must be lists")
        for i, raw in enumerate(raw_blocks):
            if not isinstance(raw, Mapping):
                raise ValidationError(f"Block at index {i} must be an object")
        for i, raw in enumerate(raw_edges):
            if not isinstance(raw, Mapping):
                raise ValidationError(f"Edge at index {i} must be an object")
        return cls(
            blocks=[Block.from_dict(b) for b in raw_blocks],
            edges=[Edge.from_dict(e) for e in raw_edges],
        )

    def __repr__(self) -> str:
        return f"WorkflowGraph(blocks={[b.id for b in self._blocks]}, edges={len(self._edges)})"


def _unique(ids: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    ordered = []
    for block_id in ids:
        if block_id not in seen:
            seen.add(block_id)
            ordered.append(block_id)
    return ordered
