"""
Shared FastAPI dependencies: authentication, workflow access and the
engine collaborators used by the routes.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from routeflow.config import settings
from routeflow.deployments import AccessContext, DeploymentStore, User, deployment_store
from routeflow.engine.handlers import HandlerRegistry, create_default_registry
from routeflow.storage.memory import RunStorage, run_storage
from routeflow.tools.gateway import ToolGateway


logger = logging.getLogger(__name__)

_gateway: Optional[ToolGateway] = None
_registry: Optional[HandlerRegistry] = None
_registry_gateway: Optional[ToolGateway] = None


def get_store() -> DeploymentStore:
    return deployment_store


def get_run_storage() -> RunStorage:
    return run_storage


def get_gateway() -> ToolGateway:
    """Process-wide tool gateway, created on first use."""
    global _gateway
    if _gateway is None:
        _gateway = ToolGateway()
    return _gateway


def init_handler_registry(gateway: Optional[ToolGateway] = None) -> HandlerRegistry:
    """
    Build the process-wide handler registry.

    Called once from the application lifespan so a misconfigured registry
    stops startup instead of failing the first execute request.
    """
    global _registry, _registry_gateway
    _registry, _registry_gateway = None, None
    gateway = gateway or get_gateway()
    _registry = create_default_registry(gateway, router_tool_id=settings.ROUTER_TOOL_ID)
    _registry_gateway = gateway
    logger.info(f"Handler registry ready for kinds: {[k.value for k in _registry.kinds]}")
    return _registry


def get_handler_registry(gateway: ToolGateway = Depends(get_gateway)) -> HandlerRegistry:
    """The registry built at startup, rebuilt only when a different gateway is injected."""
    if _registry is None or _registry_gateway is not gateway:
        return init_handler_registry(gateway)
    return _registry


async def close_gateway() -> None:
    global _gateway, _registry, _registry_gateway
    if _gateway is not None:
        await _gateway.aclose()
    _gateway = None
    _registry = None
    _registry_gateway = None


async def get_current_user(
    x_api_key: Optional[str] = Header(default=None),
    store: DeploymentStore = Depends(get_store),
) -> User:
    """Resolve the caller from the X-API-Key header."""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")
    user = await store.get_user_by_api_key(x_api_key)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def require_read_access(
    workflow_id: str,
    user: User = Depends(get_current_user),
    store: DeploymentStore = Depends(get_store),
) -> AccessContext:
    """Owner or any workspace permission."""
    access = await store.access_context(workflow_id, user.id)
    if access is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    if not access.can_read:
        raise HTTPException(status_code=403, detail="Access denied")
    return access


async def require_write_access(
    workflow_id: str,
    user: User = Depends(get_current_user),
    store: DeploymentStore = Depends(get_store),
) -> AccessContext:
    """Owner, or write/admin workspace permission."""
    access = await store.access_context(workflow_id, user.id)
    if access is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    if not access.can_write:
        raise HTTPException(status_code=403, detail="Access denied")
    return access
