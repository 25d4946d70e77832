"""
FastAPI application for the dashboard sync engine.

Exposes the engine's view-model, event history and operator commands
over HTTP for the dashboard front end.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..domain.exceptions import DomainException, EngineSuspendedError
from ..engine import DashboardEngine

logger = logging.getLogger(__name__)


def create_app(engine: Optional[DashboardEngine] = None) -> FastAPI:
    """
    Application factory.

    Args:
        engine: Engine to serve; built from environment settings if omitted.
            Started and stopped by the application lifespan.
    """
    engine = engine or DashboardEngine()
    settings = engine.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        # Startup
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        await engine.start()

        yield

        # Shutdown
        logger.info("Shutting down application...")
        await engine.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Green Nanny dashboard sync engine API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(EngineSuspendedError)
    async def suspended_handler(request: Request, exc: EngineSuspendedError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=exc.to_dict(),
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=exc.to_dict(),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={'error': 'VALIDATION_ERROR', 'message': str(exc)},
        )


def register_routes(app: FastAPI) -> None:
    """Register API routes."""

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        settings = app.state.engine.settings
        return {
            'name': settings.app_name,
            'version': settings.app_version,
            'api_docs': '/docs' if settings.debug else None,
        }

    from .v1 import api_router

    # Mount API under /api prefix
    main_router = APIRouter(prefix="/api")
    main_router.include_router(api_router)

    app.include_router(main_router)
