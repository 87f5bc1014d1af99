"""FastAPI application definition."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from tenantauth.core.exceptions import InfrastructureError, ServiceError
from tenantauth.entrypoints.api.deps import Settings, lifespan
from tenantauth.entrypoints.api.responses import error_response, validation_code
from tenantauth.entrypoints.api.routes import api_router

logger = structlog.get_logger()


async def service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render expected workflow and guard failures."""
    assert isinstance(exc, ServiceError)
    return error_response(exc)


async def infrastructure_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render infrastructure failures with a generic message."""
    assert isinstance(exc, InfrastructureError)
    logger.error("infrastructure_error", path=request.url.path, detail=exc.detail)
    return error_response(exc)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render request-validation failures as 400 with a field code."""
    assert isinstance(exc, RequestValidationError)
    errors = exc.errors()
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "statusCode": 400,
            "message": validation_code(errors),
            "data": {},
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Configuration; read from the environment if omitted.
    """
    app = FastAPI(
        title="tenantauth",
        description="Multi-tenant authentication and onboarding",
        version="1.0.0",
        lifespan=lifespan,
        redirect_slashes=False,  # Prevent 307 redirects that lose auth headers
    )
    app.state.settings = settings or Settings()

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if app.state.settings.trusted_proxies:
        app.add_middleware(
            ProxyHeadersMiddleware, trusted_hosts=app.state.settings.trusted_proxies
        )

    app.add_exception_handler(InfrastructureError, infrastructure_error_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
