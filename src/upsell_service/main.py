"""FastAPI application entry point."""

import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from upsell_service import __version__
from upsell_service.api.v1 import webhooks
from upsell_service.api.v1.router import api_router
from upsell_service.config import get_settings
from upsell_service.infrastructure.database.connection import dispose_engine
from upsell_service.logging_config import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting upsell recommender service",
        app_env=settings.app_env,
        debug=settings.debug,
        scheduled_shops=len(settings.scheduled_shop_list),
    )

    yield

    await dispose_engine()
    logger.info("Shutting down upsell recommender service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Upsell Recommender API",
        description="Periodic co-purchase analysis and upsell recommendations for Shopify stores",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "upsell_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
