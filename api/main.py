"""
FastAPI application for the local control API.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.middleware.error_handler import (
    APIError,
    api_error_handler,
    global_exception_handler,
    http_exception_handler,
    tunnel_error_handler,
    validation_exception_handler
)
from api.routes import tunnel, utilities
from core.context import AppContext, build_context
from core.logger import get_logger
from modules.tunnel.exceptions import TunnelError

logger = get_logger(__name__)

VERSION = "1.0.0"


def create_app(context: Optional[AppContext] = None, run_scheduler: bool = True) -> FastAPI:
    """
    Create the API application.

    Args:
        context: Application context; built from the global config when None
        run_scheduler: Start and stop the context's scheduler with the app

    Returns:
        FastAPI app with `app.state.context` set
    """
    context = context or build_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting tunnel-autopilot API", tunnel=context.controller.tunnel_name)
        context.engine.ensure_status_record()
        if run_scheduler and context.scheduler is not None:
            context.scheduler.start()
        try:
            yield
        finally:
            logger.info("Shutting down tunnel-autopilot API")
            if context.scheduler is not None and context.scheduler.is_running():
                context.scheduler.stop()

    app = FastAPI(
        title="tunnel-autopilot",
        description="Local control API for automatic VPN tunnel management",
        version=VERSION,
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan
    )
    app.state.context = context

    # Exception handlers
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(TunnelError, tunnel_error_handler)

    # Include routers
    app.include_router(tunnel.router, prefix="/api/v1/tunnel", tags=["tunnel"])
    app.include_router(utilities.router, prefix="/api/v1", tags=["utilities"])

    @app.get("/health")
    async def health():
        """
        Health check endpoint.

        Returns:
            200 when the scheduler runs (or is not used), 503 otherwise
        """
        scheduler = context.scheduler
        scheduler_running = scheduler.is_running() if scheduler is not None else None
        healthy = scheduler_running is not False or not run_scheduler

        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "degraded",
                "version": VERSION,
                "tunnel": context.controller.tunnel_name,
                "scheduler_running": scheduler_running,
                "cycles": context.engine.tracker.get_status(),
            }
        )

    return app
