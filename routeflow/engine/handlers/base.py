"""
Block Handler contract.

A handler owns the side-effecting work of running one kind of block.
The orchestrator hands it the block, the block's fully resolved inputs
and the run's ExecutionContext, and stores whatever it returns.
"""

from typing import Any, Dict, Mapping, Optional
from abc import ABC, abstractmethod
import logging

from routeflow.engine.graph import Block, BlockKind
from routeflow.engine.state import ExecutionContext
from routeflow.errors import ExecutionError
from routeflow.tools.gateway import ToolGateway


logger = logging.getLogger(__name__)


class BlockHandler(ABC):
    """
    Base class for block handlers.

    Subclasses set ``kind`` and implement ``execute``. ``can_handle`` is a
    pure predicate over the block kind.
    """

    kind: BlockKind

    def can_handle(self, block: Block) -> bool:
        return block.kind == self.kind

    @abstractmethod
    async def execute(
        self,
        block: Block,
        inputs: Mapping[str, Any],
        context: ExecutionContext,
    ) -> Any:
        """
        Run the block.

        Args:
            block: The block being executed
            inputs: Fully resolved parameters for this block
            context: The run's execution context

        Returns:
            The block's output
        """

    def fail(
        self,
        block: Block,
        message: str,
        partial_output: Optional[Dict[str, Any]] = None,
    ) -> ExecutionError:
        """Build an ExecutionError carrying this block's identity."""
        return ExecutionError(
            message,
            block_id=block.id,
            block_name=block.title or self.default_name,
            partial_output=partial_output,
        )

    @property
    def default_name(self) -> str:
        return self.kind.value.replace("_", " ").title()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind='{self.kind.value}')"


class ToolBlockHandler(BlockHandler):
    """
    Handler that performs its work through the Tool Invocation Gateway.

    Args:
        gateway: Gateway used for every external call
    """

    default_tool: str = ""

    def __init__(self, gateway: ToolGateway):
        self.gateway = gateway

    def tool_id(self, block: Block) -> str:
        """Tool configured on the block, falling back to the handler's default."""
        return str(block.config.get("tool") or self.default_tool)

    async def invoke_tool(
        self,
        block: Block,
        params: Dict[str, Any],
        context: ExecutionContext,
    ) -> Dict[str, Any]:
        """
        Invoke the block's tool and return its output.

        Raises:
            ToolNotFoundError: If the tool is not registered
            ExecutionError: If the tool reports failure
        """
        tool_id = self.tool_id(block)
        result = await self.gateway.invoke(tool_id, params, context)
        if not result.success:
            raise self.fail(block, result.error or f"{tool_id} failed", result.output)
        return result.output
