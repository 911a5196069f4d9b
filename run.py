#!/usr/bin/env python3
"""
Simple run script for RouteFlow.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 BOOTSTRAP_API_KEY=dev-key python run.py
"""

import uvicorn

from routeflow.config import settings


def main():
    """Run the FastAPI application."""
    host = settings.HOST
    port = settings.PORT

    print(f"""
  RouteFlow {settings.APP_VERSION}
  Block-based workflows with intent routing and versioned deployments

  Server:    http://{host}:{port}
  API Docs:  http://{host}:{port}/docs
  ReDoc:     http://{host}:{port}/redoc
  Admin key: {"configured" if settings.BOOTSTRAP_API_KEY else "not set (BOOTSTRAP_API_KEY)"}
    """)

    uvicorn.run(
        "routeflow.main:app",
        host=host,
        port=port,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
