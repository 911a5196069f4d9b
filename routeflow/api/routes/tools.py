"""
Tools API Routes.

Endpoints for listing the tools available to block handlers.
"""

from fastapi import APIRouter, Depends, HTTPException

from routeflow.api.deps import get_gateway
from routeflow.api.schemas import ErrorResponse, ToolInfo, ToolListResponse
from routeflow.tools.gateway import ToolGateway


router = APIRouter(prefix="/tools", tags=["Tools"])


@router.get(
    "/",
    response_model=ToolListResponse,
)
async def list_tools(gateway: ToolGateway = Depends(get_gateway)) -> ToolListResponse:
    """
    List all registered tools.

    Tools are the external capabilities block handlers call through the gateway.
    """
    tools = [ToolInfo(**t) for t in gateway.registry.list_tools()]
    return ToolListResponse(tools=tools, total=len(tools))


@router.get(
    "/{tool_id}",
    response_model=ToolInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_tool(tool_id: str, gateway: ToolGateway = Depends(get_gateway)) -> ToolInfo:
    """Get information about a specific tool."""
    tool = gateway.registry.get(tool_id)
    if not tool:
        raise HTTPException(status_code=404, detail=f"Tool '{tool_id}' not found")
    return ToolInfo(**tool.to_dict())
