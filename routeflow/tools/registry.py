"""
Tool Registry for the Tool Invocation Gateway.

A tool is an external capability (typically an HTTP call) that block
handlers and the router invoke through the gateway. Each tool is an
async function taking the fully resolved params and a shared HTTP
client and returning a ToolResult.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from pydantic import BaseModel, Field
import logging

import httpx


logger = logging.getLogger(__name__)


class ToolResult(BaseModel):
    """Outcome of a tool invocation."""
    success: bool
    output: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


ToolFunc = Callable[[Dict[str, Any], httpx.AsyncClient], Awaitable[ToolResult]]


@dataclass
class Tool:
    """
    A registered tool.

    Attributes:
        id: Unique identifier used by handlers
        func: Async callable performing the I/O
        name: Display name
        description: Human-readable description
        parameters: Parameter name -> description
    """
    id: str
    func: ToolFunc
    name: str = ""
    description: str = ""
    parameters: Dict[str, str] = field(default_factory=dict)

    async def __call__(self, params: Dict[str, Any], client: httpx.AsyncClient) -> ToolResult:
        return await self.func(params, client)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize tool metadata."""
        return {
            "id": self.id,
            "name": self.name or self.id,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolRegistry:
    """
    Registry of gateway tools.

    Usage:
        registry = ToolRegistry()

        @registry.register("echo", description="Echo params back")
        async def echo(params, client):
            return ToolResult(success=True, output=params)

        tool = registry.get("echo")
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(
        self,
        tool_id: Optional[str] = None,
        name: str = "",
        description: str = "",
        parameters: Optional[Dict[str, str]] = None,
    ) -> Callable:
        """
        Decorator to register an async function as a tool.

        Args:
            tool_id: Tool id (defaults to function name)
            name: Display name
            description: Tool description (defaults to docstring)
            parameters: Parameter descriptions
        """
        def decorator(func: ToolFunc) -> ToolFunc:
            self.add(func, tool_id, name, description, parameters)
            return func

        return decorator

    def add(
        self,
        func: ToolFunc,
        tool_id: Optional[str] = None,
        name: str = "",
        description: str = "",
        parameters: Optional[Dict[str, str]] = None,
    ) -> Tool:
        """Directly add a function as a tool (non-decorator version)."""
        resolved_id = tool_id or func.__name__
        tool = Tool(
            id=resolved_id,
            func=func,
            name=name or resolved_id,
            description=(description or func.__doc__ or "").strip(),
            parameters=parameters or {},
        )
        self._tools[resolved_id] = tool
        logger.debug(f"Registered tool: {resolved_id}")
        return tool

    def get(self, tool_id: str) -> Optional[Tool]:
        """Get a tool by id."""
        return self._tools.get(tool_id)

    def remove(self, tool_id: str) -> bool:
        """Remove a tool from the registry."""
        return self._tools.pop(tool_id, None) is not None

    def list_tools(self) -> List[Dict[str, Any]]:
        """List all registered tools with their metadata."""
        return [tool.to_dict() for tool in self._tools.values()]

    def has(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def __contains__(self, tool_id: str) -> bool:
        return self.has(tool_id)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())


# Global tool registry instance
tool_registry = ToolRegistry()


def register_tool(
    tool_id: Optional[str] = None,
    name: str = "",
    description: str = "",
    parameters: Optional[Dict[str, str]] = None,
) -> Callable:
    """Convenience decorator to register a tool in the global registry."""
    return tool_registry.register(tool_id, name, description, parameters)


def get_tool(tool_id: str) -> Optional[Tool]:
    """Get a tool from the global registry."""
    return tool_registry.get(tool_id)
