"""
FastAPI application factory.

Usage:
    from pmcopilot.server.app import create_app

    app = create_app()

Or run directly:
    uvicorn pmcopilot.server:app --reload
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pmcopilot import __version__
from pmcopilot.config import Settings, get_settings
from pmcopilot.observability import ObservabilityClient
from pmcopilot.providers import OpenAICompatProvider
from pmcopilot.server.exceptions import APIError
from pmcopilot.server.middleware import RequestTrackingMiddleware
from pmcopilot.server.routers import feedback, health, prds, providers, templates
from pmcopilot.server.schemas import ErrorDetail, ErrorResponse
from pmcopilot.server.services.prd_service import PRDService
from pmcopilot.storage import PRDRepository, create_db_engine, init_db, session_factory


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    init_db(app.state.engine)
    observability: ObservabilityClient = app.state.observability
    await observability.start()

    yield

    # Shutdown: flush buffered traces before exit
    await observability.stop()
    await app.state.provider.aclose()
    if app.state.owns_http_client:
        await app.state.http_client.aclose()
    app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    observability: Optional[ObservabilityClient] = None,
    provider: Optional[OpenAICompatProvider] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration; defaults to the cached environment settings.
        observability: Prebuilt observability client (tests inject fakes).
        provider: Prebuilt LLM provider.
        http_client: Client for auxiliary calls such as Ollama model listing.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="PM Copilot API",
        description="AI-assisted PRD authoring backend",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.observability = observability or ObservabilityClient.from_settings(settings)
    app.state.provider = provider or OpenAICompatProvider(
        "ollama",
        default_model=settings.default_model,
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
    )
    app.state.prd_service = PRDService(app.state.provider, app.state.observability)
    app.state.engine = create_db_engine(settings.database_url)
    app.state.repository = PRDRepository(session_factory(app.state.engine))
    app.state.owns_http_client = http_client is None
    app.state.http_client = http_client or httpx.AsyncClient(timeout=10.0)

    # Add middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Exception handlers
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Handle custom API errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(
                    code=exc.code,
                    message=exc.message,
                    request_id=exc.request_id
                    or getattr(request.state, "request_id", None),
                )
            ).model_dump(),
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="internal_error",
                    message="An internal error occurred",
                    request_id=request_id,
                )
            ).model_dump(),
            headers={"X-Request-ID": request_id},
        )

    # Include routers
    app.include_router(health.router)
    app.include_router(feedback.router)
    app.include_router(prds.router)
    app.include_router(templates.router)
    app.include_router(providers.router)

    return app
