"""
Tool Invocation Gateway.

The single entry point handlers and the router use to perform external
I/O. The gateway resolves a tool by id, runs it with a shared HTTP client
and normalizes every outcome into a ToolResult. It never retries.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional
import logging

import httpx

from routeflow.config import settings
from routeflow.errors import ToolNotFoundError
from routeflow.tools.registry import ToolRegistry, ToolResult, tool_registry

if TYPE_CHECKING:
    from routeflow.engine.state import ExecutionContext


logger = logging.getLogger(__name__)


class ToolGateway:
    """
    Invokes registered tools.

    Usage:
        gateway = ToolGateway()
        result = await gateway.invoke("bot_assistant", params, context)
        if not result.success:
            ...

    Args:
        registry: Tool registry (defaults to the global one)
        client: HTTP client to share across calls (created lazily if omitted)
        timeout: Per-request timeout in seconds for the lazily created client
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.registry = registry if registry is not None else tool_registry
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout if timeout is not None else settings.TOOL_TIMEOUT

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def invoke(
        self,
        tool_id: str,
        params: Dict[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> ToolResult:
        """
        Invoke a tool.

        Args:
            tool_id: Registered tool id
            params: Fully resolved params (target URL, credentials, payload)
            context: Execution context, forwarded to the tool as ``_context``

        Returns:
            ToolResult; transport and response errors yield ``success=False``

        Raises:
            ToolNotFoundError: If no tool is registered under ``tool_id``
        """
        tool = self.registry.get(tool_id)
        if tool is None:
            raise ToolNotFoundError(tool_id)

        call_params = dict(params)
        if context is not None:
            call_params["_context"] = context.tool_context()

        logger.debug(f"Invoking tool: {tool_id}")
        try:
            result = await tool(call_params, self.client)
        except httpx.TimeoutException as e:
            logger.error(f"Tool {tool_id} timed out: {e}")
            return ToolResult(success=False, error=f"{tool_id} timed out")
        except httpx.HTTPError as e:
            logger.error(f"Tool {tool_id} transport error: {e}")
            return ToolResult(success=False, error=f"{tool_id} request failed: {e}")
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Tool {tool_id} failed: {e}")
            return ToolResult(success=False, error=str(e))

        if not result.success:
            logger.warning(f"Tool {tool_id} reported failure: {result.error}")
        return result

    async def aclose(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
