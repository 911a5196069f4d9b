"""
RouteFlow - FastAPI Application Entry Point.

Serves the deployment-version API and executes deployed workflows.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from routeflow.config import settings
from routeflow.api.deps import close_gateway, init_handler_registry
from routeflow.api.routes import deployments, tools, workflows
from routeflow.deployments import Permission, deployment_store
from routeflow.errors import RouteFlowError


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def bootstrap_admin() -> None:
    """Seed a local admin user when BOOTSTRAP_API_KEY is configured."""
    if not settings.BOOTSTRAP_API_KEY:
        return
    if await deployment_store.get_user_by_api_key(settings.BOOTSTRAP_API_KEY):
        return
    await deployment_store.add_user("admin", "Admin", api_key=settings.BOOTSTRAP_API_KEY)
    await deployment_store.grant(settings.BOOTSTRAP_WORKSPACE_ID, "admin", Permission.ADMIN)
    logger.info(f"Bootstrapped admin user for workspace '{settings.BOOTSTRAP_WORKSPACE_ID}'")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await bootstrap_admin()
    init_handler_registry()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_gateway()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## RouteFlow API

Execute block-based workflows with dynamic routing and manage their deployments.

### Features
- **Blocks**: Typed units dispatched to one handler per kind
- **Intent routing**: Router blocks pick exactly one downstream block per run
- **Deployments**: Immutable numbered snapshots with a single active version
- **Concurrent branches**: Independent branches run in parallel; failures stay local

### Quick Start
1. Register a workflow: `POST /workflows`
2. Deploy a version: `POST /workflows/{id}/deployments`
3. Execute it: `POST /workflows/{id}/execute`
4. Inspect the run: `GET /runs/{run_id}`

All endpoints except `/`, `/health` and `/tools` require an `X-API-Key` header.
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(workflows.router)
app.include_router(deployments.router)
app.include_router(tools.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Block-based workflow execution with dynamic routing",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "workflows": "/workflows",
            "deployments": "/workflows/{workflow_id}/deployments",
            "execute": "/workflows/{workflow_id}/execute",
            "workflow_runs": "/workflows/{workflow_id}/runs",
            "runs": "/runs/{run_id}",
            "tools": "/tools",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    from routeflow.storage.memory import run_storage

    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "workflows_count": len(deployment_store),
        "runs_count": len(run_storage),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(RouteFlowError)
async def routeflow_exception_handler(request: Request, exc: RouteFlowError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"Request failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.message,
            "status_code": exc.status_code,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP Error",
            "detail": exc.detail,
            "status_code": exc.status_code,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "status_code": 500,
        },
    )
