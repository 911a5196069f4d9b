"""
Tools package - Tool registry, invocation gateway and built-in tools.
"""

from routeflow.tools.registry import (
    Tool,
    ToolRegistry,
    ToolResult,
    tool_registry,
    register_tool,
    get_tool,
)
from routeflow.tools.gateway import ToolGateway

# Import builtin tools to register them
import routeflow.tools.builtin  # noqa: F401

__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "ToolGateway",
    "tool_registry",
    "register_tool",
    "get_tool",
]
