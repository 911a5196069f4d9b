"""
API package - FastAPI routes and schemas.
"""

from routeflow.api.routes import deployments, tools, workflows

__all__ = ["deployments", "tools", "workflows"]
