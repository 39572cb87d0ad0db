"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from restock_service import __version__
from restock_service.api.v1.router import api_router
from restock_service.config import get_settings
from restock_service.errors import RestockError, restock_error_handler
from restock_service.infrastructure.database.connection import dispose_engine
from restock_service.infrastructure.redis import close_redis
from restock_service.log_config import configure_logging
from restock_service.middleware.request_context import RequestContextMiddleware

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting restock service",
        app_env=settings.app_env,
        debug=settings.debug,
        jobs_enabled=settings.jobs_enabled,
        notifications_enabled=settings.notifications_enabled,
    )

    yield

    await close_redis()
    await dispose_engine()
    logger.info("Shutting down restock service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Restock Notification API",
        description="Back-in-stock wait-lists, restock notifications and recovered revenue attribution",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(RestockError, restock_error_handler)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "restock_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
