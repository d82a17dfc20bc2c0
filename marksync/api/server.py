"""
FastAPI server for the marksync control API.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config.settings import SyncSettings
from ..exceptions import (
    AuthenticationError,
    ConflictError,
    MarkSyncException,
    NetworkError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from . import get_auth_guard, get_dispatcher
from .routes import router

logger = logging.getLogger(__name__)


def status_for(exc: MarkSyncException) -> int:
    """HTTP status for an engine error."""
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NetworkError):
        return 503
    if isinstance(exc, StorageError):
        return 500
    return 502


def create_app() -> FastAPI:
    """Build the FastAPI application (services are injected via set_services)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API server starting up")
        yield
        logger.info("API server shutting down")

    app = FastAPI(
        title="marksync API",
        description="Share bookmark folders to GitHub and keep them in sync",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        guard = get_auth_guard()
        auth = await guard.status() if guard else {"connected": False}
        dispatcher = get_dispatcher()
        return {
            "status": "healthy",
            "version": __version__,
            "github_connected": auth.get("connected", False),
            "pending_events": dispatcher.queue.qsize() if dispatcher else 0,
            "server_time": datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ"),
        }

    @app.exception_handler(MarkSyncException)
    async def marksync_error_handler(request: Request, exc: MarkSyncException):
        """Map engine errors onto HTTP statuses."""
        status = status_for(exc)
        log = logger.error if status >= 500 else logger.warning
        log(f"{request.method} {request.url.path} failed: {exc.to_log_string()}")

        content = {"error": exc.error_code, "message": exc.user_message, "detail": exc.message}
        if isinstance(exc, AuthenticationError):
            content["reconnect_required"] = True
        return JSONResponse(status_code=status, content=content)

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.error(f"Unhandled error in API endpoint: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_SERVER_ERROR", "message": "An unexpected error occurred"},
        )

    return app


class ApiServer:
    """Runs the API app with uvicorn in a background task."""

    def __init__(self, config: SyncSettings, app: Optional[FastAPI] = None):
        self.config = config
        self.app = app or create_app()
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

    async def start_server(self) -> None:
        """Start the server without blocking."""
        if self._server_task is not None:
            logger.warning("API server already running")
            return

        host = self.config.api.host
        port = self.config.api.port
        server_config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level=self.config.log_level.value.lower(),
            loop="asyncio",
        )
        self.server = uvicorn.Server(server_config)
        self._server_task = asyncio.create_task(self.server.serve())
        logger.info(f"API server started on http://{host}:{port}")

    async def stop_server(self) -> None:
        """Stop the server gracefully."""
        if self.server is None:
            return

        self.server.should_exit = True
        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Server shutdown timed out, cancelling task")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        self.server = None
        self._server_task = None
        logger.info("API server stopped")
