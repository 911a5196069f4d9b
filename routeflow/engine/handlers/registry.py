"""
Block Handler Registry.

The registry is an explicit list of handlers built once at process start
and injected wherever blocks are dispatched. Construction fails fast if
two handlers would accept the same block kind, so dispatch never has to
break a tie at run time.
"""

from typing import Any, Dict, Iterable, Iterator, List, Mapping
import logging

from routeflow.engine.graph import Block, BlockKind
from routeflow.engine.handlers.base import BlockHandler
from routeflow.engine.state import ExecutionContext
from routeflow.errors import (
    ExecutionError,
    HandlerNotFoundError,
    RegistryConfigurationError,
    RouteFlowError,
)


logger = logging.getLogger(__name__)


class HandlerRegistry:
    """
    Dispatches blocks to the single handler that accepts their kind.

    Usage:
        registry = HandlerRegistry([ChatTriggerHandler(), BotAssistantHandler(gateway)])
        output = await registry.dispatch(block, inputs, context)

    Raises:
        RegistryConfigurationError: If two handlers claim the same kind
    """

    def __init__(self, handlers: Iterable[BlockHandler]):
        self._handlers: List[BlockHandler] = list(handlers)
        self._by_kind: Dict[BlockKind, BlockHandler] = {}

        for handler in self._handlers:
            kind = getattr(handler, "kind", None)
            if not isinstance(kind, BlockKind):
                raise RegistryConfigurationError(
                    f"Handler {type(handler).__name__} does not declare a valid block kind"
                )

        # Probe every kind so overridden can_handle predicates are checked too
        for kind in BlockKind:
            sample = Block(id=f"__sample_{kind.value}__", kind=kind)
            claimants = [h for h in self._handlers if h.can_handle(sample)]
            if len(claimants) > 1:
                raise RegistryConfigurationError(
                    f"Block kind '{kind.value}' is claimed by multiple handlers: "
                    f"{[type(h).__name__ for h in claimants]}"
                )
            if claimants:
                self._by_kind[kind] = claimants[0]

        logger.debug(f"Handler registry built for kinds: {[k.value for k in self._by_kind]}")

    @property
    def kinds(self) -> List[BlockKind]:
        return list(self._by_kind)

    def resolve(self, block: Block) -> BlockHandler:
        """
        Find the handler for a block.

        Raises:
            HandlerNotFoundError: If no registered handler accepts the block
        """
        handler = self._by_kind.get(block.kind)
        if handler is None or not handler.can_handle(block):
            raise HandlerNotFoundError(block.id, block.kind.value)
        return handler

    def can_dispatch(self, block: Block) -> bool:
        handler = self._by_kind.get(block.kind)
        return handler is not None and handler.can_handle(block)

    async def dispatch(
        self,
        block: Block,
        inputs: Mapping[str, Any],
        context: ExecutionContext,
    ) -> Any:
        """
        Execute a block with its handler.

        RouteFlow errors raised by the handler propagate unchanged; any
        other exception is wrapped in an ExecutionError carrying the block's
        identity.
        """
        handler = self.resolve(block)
        logger.info(f"Executing {block.kind.value} block: {block.id}")
        try:
            return await handler.execute(block, inputs, context)
        except RouteFlowError:
            raise
        except Exception as e:
            raise ExecutionError(
                str(e) or type(e).__name__,
                block_id=block.id,
                block_name=block.title or handler.default_name,
            ) from e

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[BlockHandler]:
        return iter(self._handlers)
