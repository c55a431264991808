from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.config.settings import settings
from src.core.container import ServiceContainer
from src.processing.scheduler import IndexScheduler
from .routes import chat_router, health_router, index_router

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build services, verify storage and embedding configuration
    if app.state.container is None:
        app.state.container = ServiceContainer()
    container = app.state.container
    await container.startup()

    scheduler = None
    if container.settings.SYNC_INTERVAL_HOURS > 0:
        scheduler = IndexScheduler(
            container.indexer,
            container.source,
            container.settings.SYNC_INTERVAL_HOURS
        )
        scheduler.start()

    yield  # Server is running and handling requests

    # Shutdown: stop scheduled indexing, then release storage
    if scheduler is not None:
        await scheduler.stop()
    await container.shutdown()

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = container.settings if container is not None else settings
    app = FastAPI(
        title=app_settings.API_TITLE,
        description=app_settings.API_DESCRIPTION,
        version=app_settings.API_VERSION,
        lifespan=lifespan
    )
    app.state.container = container

    # Configure CORS
    origins = app_settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(chat_router, prefix="/api")
    app.include_router(index_router, prefix="/api")
    app.include_router(health_router, prefix="/api")

    return app
