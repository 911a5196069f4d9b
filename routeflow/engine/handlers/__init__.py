"""
Handlers package - Block handlers and the registry that dispatches them.
"""

from typing import Optional

from routeflow.engine.handlers.base import BlockHandler, ToolBlockHandler
from routeflow.engine.handlers.chat import (
    BotAssistantHandler,
    ChatResponseHandler,
    ChatTriggerHandler,
)
from routeflow.engine.handlers.registry import HandlerRegistry
from routeflow.engine.handlers.router import IntentRouterHandler
from routeflow.tools.gateway import ToolGateway


def create_default_registry(gateway: ToolGateway, router_tool_id: Optional[str] = None) -> HandlerRegistry:
    """Build the registry with one handler per built-in block kind."""
    return HandlerRegistry([
        ChatTriggerHandler(),
        BotAssistantHandler(gateway),
        ChatResponseHandler(gateway),
        IntentRouterHandler(gateway, tool_id=router_tool_id),
    ])


__all__ = [
    "BlockHandler",
    "ToolBlockHandler",
    "HandlerRegistry",
    "ChatTriggerHandler",
    "BotAssistantHandler",
    "ChatResponseHandler",
    "IntentRouterHandler",
    "create_default_registry",
]
