"""
Error taxonomy for RouteFlow.

Every error carries enough structured context (block id/name, message)
for a caller to render a diagnosable failure. The API layer maps these
to HTTP status codes via ``status_code``.
"""

from typing import Any, Dict, List, Optional


class RouteFlowError(Exception):
    """Base class for all RouteFlow errors."""

    status_code: int = 500
    fatal: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
        }


# ============================================================
# Configuration Errors
# ============================================================

class RegistryConfigurationError(RouteFlowError):
    """Two handlers claim the same block kind, or a handler is malformed."""
    fatal = True


class HandlerNotFoundError(RouteFlowError):
    """No registered handler accepts the block's kind."""

    fatal = True

    def __init__(self, block_id: str, kind: str):
        super().__init__(f"No handler registered for block '{block_id}' of kind '{kind}'")
        self.block_id = block_id
        self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "block_id": self.block_id, "kind": self.kind}


class ToolNotFoundError(RouteFlowError):
    """A handler asked the gateway for a tool that is not registered."""

    fatal = True

    def __init__(self, tool_id: str):
        super().__init__(f"Tool not found: {tool_id}")
        self.tool_id = tool_id

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "tool_id": self.tool_id}


# ============================================================
# Runtime Errors
# ============================================================

class ExecutionError(RouteFlowError):
    """Wraps a handler's runtime failure."""

    def __init__(
        self,
        message: str,
        block_id: str,
        block_name: str,
        partial_output: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.block_id = block_id
        self.block_name = block_name
        self.partial_output = partial_output or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "block_id": self.block_id,
            "block_name": self.block_name,
            "partial_output": self.partial_output,
        }


class InvalidRoutingDecision(RouteFlowError):
    """The decision maker answered with something outside the candidate set."""

    fatal = True

    def __init__(self, raw_response: str, candidate_ids: List[str]):
        super().__init__(f"Invalid routing decision: {raw_response!r}")
        self.raw_response = raw_response
        self.candidate_ids = candidate_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "raw_response": self.raw_response,
            "candidate_ids": self.candidate_ids,
        }


class StateConflictError(RouteFlowError):
    """A block state entry was written twice within one run."""

    def __init__(self, block_id: str, iteration: int):
        super().__init__(
            f"State for block '{block_id}' (iteration {iteration}) was already written"
        )
        self.block_id = block_id
        self.iteration = iteration


# ============================================================
# Caller Errors
# ============================================================

class ValidationError(RouteFlowError):
    """Caller supplied invalid data."""
    status_code = 400


class VersionNotFoundError(RouteFlowError):
    """No deployment version row matches (workflow_id, version)."""

    status_code = 404

    def __init__(self, workflow_id: str, version: int):
        super().__init__("Deployment version not found")
        self.workflow_id = workflow_id
        self.version = version

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "workflow_id": self.workflow_id, "version": self.version}


class WorkflowNotFoundError(RouteFlowError):
    """The workflow record does not exist."""

    status_code = 404

    def __init__(self, workflow_id: str):
        super().__init__("Workflow not found")
        self.workflow_id = workflow_id
