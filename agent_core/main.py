"""
Context Agent API
=================
FastAPI application: routes, exception handlers and lifecycle hooks.

Run with:
    uvicorn agent_core.main:app --host 0.0.0.0 --port 3000

Author: Context Agent
"""

import os
import logging
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import AgentSettings
from .errors import AgentError
from .models import utcnow
from .routes import agent_router
from .startup import AgentComponents, build_agent, shutdown_agent

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _error_body(status_code: int, message: str) -> dict:
    return {
        "error": HTTPStatus(status_code).phrase,
        "message": message,
        "timestamp": utcnow().isoformat(),
    }


def _register_exception_handlers(app: FastAPI):

    @app.exception_handler(AgentError)
    async def agent_error_handler(request: Request, exc: AgentError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(f"{request.method} {request.url.path} failed with {type(exc).__name__}: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.status_code, exc.public_message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        reason = "Invalid request format"
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
            reason = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        logger.warning(f"{request.method} {request.url.path} rejected: {reason}")
        return JSONResponse(status_code=400, content=_error_body(400, f"Validation failed: {reason}"))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.status_code, str(exc.detail)),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=_error_body(500, "Something went wrong"))


def create_app(
    components: Optional[AgentComponents] = None,
    settings: Optional[AgentSettings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        components: Pre-built agent (tests); built on startup when omitted
        settings: Settings for the startup build (default: from environment)
    """
    app = FastAPI(
        title="Context Agent API",
        version=__version__,
        description="Conversational agent with session memory, plugins and document retrieval",
    )

    app.include_router(agent_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    app.state.agent = components

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on startup"""
        if app.state.agent is None:
            app.state.agent = await build_agent(settings)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Clean up on shutdown"""
        if app.state.agent is not None:
            await shutdown_agent(app.state.agent)
        logger.info("✅ Shutdown complete")

    @app.get("/")
    async def root():
        return {
            "message": "Context Agent API",
            "version": __version__,
            "endpoints": {
                "message": "POST /agent/message",
                "health": "GET /agent/health",
                "session": "GET /agent/session/{session_id}",
                "search": "GET /agent/search?q=&limit=",
                "plugins": "GET /agent/plugins",
            },
        }

    return app


app = create_app()
