"""
Engine package - Core workflow execution components.
"""

from routeflow.engine.graph import Block, BlockKind, Edge, WorkflowGraph
from routeflow.engine.state import BlockState, BlockStateStore, ExecutionContext
from routeflow.engine.path import CandidateBlock, PathTracker
from routeflow.engine.routing import DynamicRouter, RoutingDecision, RoutingRule
from routeflow.engine.handlers import HandlerRegistry, create_default_registry
from routeflow.engine.executor import Executor, ExecutionResult, ExecutionStatus, execute_workflow

__all__ = [
    "Block",
    "BlockKind",
    "Edge",
    "WorkflowGraph",
    "BlockState",
    "BlockStateStore",
    "ExecutionContext",
    "CandidateBlock",
    "PathTracker",
    "DynamicRouter",
    "RoutingDecision",
    "RoutingRule",
    "HandlerRegistry",
    "create_default_registry",
    "Executor",
    "ExecutionResult",
    "ExecutionStatus",
    "execute_workflow",
]
